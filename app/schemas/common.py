"""Shared response envelope and camelCase base model."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def enum_value(v: object) -> str:
    if hasattr(v, "value"):
        return v.value
    return str(v)


def envelope(data: Any, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Success body: ``{"success": true, "data": ..., **extra}``."""
    if isinstance(data, CamelModel):
        data = data.wire()
    elif isinstance(data, list):
        data = [d.wire() if isinstance(d, CamelModel) else d for d in data]
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return body
