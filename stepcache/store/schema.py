"""Request-body schema derivation and validation.

Schemas are plain JSON-Schema-like dicts so they can live inside the case
data file. Validation rebuilds a pydantic model from the descriptor: every
object field is optional, unknown fields are allowed, arrays are typed by
their first recorded element.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, create_model

logger = logging.getLogger(__name__)


class SchemaCheck(BaseModel):
    ok: bool
    reason: str = ""


def derive_schema(body: Any) -> dict[str, Any]:
    """Infer a schema descriptor from an example JSON value."""
    if body is None:
        return {"type": "null"}
    if isinstance(body, bool):
        return {"type": "boolean"}
    if isinstance(body, int):
        return {"type": "integer"}
    if isinstance(body, float):
        return {"type": "number"}
    if isinstance(body, str):
        return {"type": "string"}
    if isinstance(body, list):
        return {"type": "array", "items": derive_schema(body[0]) if body else {}}
    if isinstance(body, dict):
        return {
            "type": "object",
            "properties": {str(k): derive_schema(v) for k, v in body.items()},
            "additionalProperties": True,
        }
    return {}


_SCALARS: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "null": type(None),
}


def _to_type(schema: dict[str, Any], name: str) -> Any:
    kind = schema.get("type")
    if kind in _SCALARS:
        return _SCALARS[kind]
    if kind == "array":
        return list[_to_type(schema.get("items") or {}, f"{name}Item")]
    if kind == "object":
        fields: dict[str, Any] = {}
        for i, (key, sub) in enumerate((schema.get("properties") or {}).items()):
            field_type = _to_type(sub, f"{name}_{i}")
            fields[f"f{i}"] = (Optional[field_type], Field(default=None, alias=key))
        return create_model(
            name,
            __config__=ConfigDict(extra="allow", strict=True),
            **fields,
        )
    return Any


def validate_body(schema: dict[str, Any] | None, body: Any) -> SchemaCheck:
    """Check ``body`` against a descriptor produced by :func:`derive_schema`."""
    if not schema:
        return SchemaCheck(ok=True)
    try:
        target = _to_type(schema, "RequestBody")
    except (TypeError, ValueError) as e:
        logger.warning("Unusable request schema: %s", e)
        return SchemaCheck(ok=False, reason=f"invalid schema: {e}")

    try:
        TypeAdapter(target).validate_python(body, strict=True)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        return SchemaCheck(ok=False, reason=problems)
    return SchemaCheck(ok=True)
