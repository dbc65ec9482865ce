"""Parameter schemas, strict input models, and invocation results for tools."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    Strict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

from agent_pipeline.artifacts.models import new_id, utc_now
from agent_pipeline.errors import ToolValidationError

ParameterType = Literal["string", "number", "boolean", "array", "object"]

_PYTHON_TYPES: dict[str, Any] = {
    "string": StrictStr,
    "number": Union[StrictInt, StrictFloat],
    "boolean": StrictBool,
    "array": Annotated[list[Any], Strict()],
    "object": Annotated[dict[str, Any], Strict()],
}


class ParameterSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ParameterType
    description: str = ""
    required: bool = False
    default: Any = None


class ToolInvocationResult(BaseModel):
    """Outcome of one gateway call. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    error: str | None = None
    success: bool
    duration_ms: float = Field(ge=0)
    attempts: int = Field(default=1, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)


def build_input_model(tool_name: str, parameters: Mapping[str, ParameterSpec]) -> type[BaseModel]:
    """Compile a parameter table into a pydantic model with strict primitive types."""
    fields: dict[str, Any] = {}
    for name, spec in parameters.items():
        annotation = _PYTHON_TYPES[spec.type]
        if spec.required:
            fields[name] = (annotation, ...)
        else:
            fields[name] = (Optional[annotation], spec.default)
    model_name = "".join(part.title() for part in tool_name.split("_")) + "Input"
    return create_model(model_name, __config__=ConfigDict(extra="ignore"), **fields)


def validate_parameters(
    tool_name: str,
    input_model: type[BaseModel],
    parameters: Mapping[str, ParameterSpec],
    params: Any,
) -> dict[str, Any]:
    """Return validated params with defaults applied, or raise ToolValidationError."""
    if not isinstance(params, Mapping):
        raise ToolValidationError(tool_name, ["Parameters must be an object"])
    try:
        payload = input_model.model_validate(dict(params))
    except ValidationError as exc:
        raise ToolValidationError(tool_name, _describe(exc, parameters)) from exc
    return payload.model_dump()


def _describe(exc: ValidationError, parameters: Mapping[str, ParameterSpec]) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    for error in exc.errors():
        name = str(error["loc"][0]) if error["loc"] else ""
        if name in seen:
            continue
        seen.add(name)
        if error["type"] == "missing":
            problems.append(f"Missing required parameter: {name}")
        elif name in parameters:
            problems.append(f"Parameter {name} must be a {parameters[name].type}")
        else:
            problems.append(error["msg"])
    return problems
