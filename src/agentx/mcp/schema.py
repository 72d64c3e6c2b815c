"""Translate MCP tool input schemas into pydantic validators."""

import keyword
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from agentx.errors import SchemaError

_EMPTY_OBJECT: dict[str, Any] = {"type": "object", "properties": {}}

_SCALARS: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list[Any],
    "object": dict[str, Any],
}


class ToolInput(BaseModel):
    """Base for translated tool inputs; unknown keys pass through untouched."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


def _python_name(key: str, index: int) -> str:
    if (
        key.isidentifier()
        and not keyword.iskeyword(key)
        and not key.startswith("_")
        and not key.startswith("model_")
        and not hasattr(BaseModel, key)
    ):
        return key
    return f"field_{index}"


def _property_type(prop: dict[str, Any]) -> Any:
    kind = prop.get("type")
    if isinstance(kind, str):
        return _SCALARS.get(kind, Any)
    # Union types ("string" | "null"), enums without a type, $ref, anyOf: accept anything
    return Any


def _model_name(tool_name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in tool_name).strip("_")
    return f"{cleaned or 'Tool'}Input"


def parameters_schema(input_schema: Any) -> dict[str, Any]:
    """JSON schema advertised to the model, normalised to an object schema."""
    if not isinstance(input_schema, dict) or not input_schema:
        return dict(_EMPTY_OBJECT)
    schema = dict(input_schema)
    schema.setdefault("type", "object")
    if schema.get("type") != "object":
        raise SchemaError(f"tool input schema must be an object, got {schema.get('type')!r}")
    properties = schema.get("properties")
    if properties is None:
        schema["properties"] = {}
    elif not isinstance(properties, dict):
        raise SchemaError("tool input schema 'properties' must be an object")
    return schema


def build_validator(tool_name: str, input_schema: Any) -> type[ToolInput]:
    """Build a pydantic model class that validates one tool's arguments.

    Every property becomes a field: string, number/integer, boolean, array and
    object map to the matching Python types; anything else degrades to ``Any``
    rather than failing the whole tool. Properties missing from ``required``
    are optional and default to ``None``.
    """
    schema = parameters_schema(input_schema)
    properties: dict[str, Any] = schema["properties"]
    required_raw = schema.get("required") or []
    if not isinstance(required_raw, list):
        raise SchemaError("tool input schema 'required' must be a list")
    required = {str(item) for item in required_raw}

    fields: dict[str, Any] = {}
    for index, (key, raw_prop) in enumerate(properties.items()):
        prop = raw_prop if isinstance(raw_prop, dict) else {}
        annotation = _property_type(prop)
        description = prop.get("description")
        if not isinstance(description, str):
            description = None
        if key in required:
            fields[_python_name(key, index)] = (
                annotation,
                Field(..., alias=key, description=description),
            )
        else:
            fields[_python_name(key, index)] = (
                annotation | None if annotation is not Any else Any,
                Field(default=None, alias=key, description=description),
            )
    return create_model(_model_name(tool_name), __base__=ToolInput, **fields)


def check_arguments(validator: type[ToolInput], arguments: object) -> str | None:
    """Return a readable validation error for the arguments, or None when they fit."""
    try:
        validator.model_validate(arguments)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "input"
            problems.append(f"{location}: {error.get('msg', 'invalid')}")
        return "; ".join(problems)
    return None
