from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def blank_to_none(value: Any) -> Any:
    """Form inputs arrive as '' when cleared; treat that the same as an unset field."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalFloat = Annotated[float | None, BeforeValidator(blank_to_none)]
OptionalInt = Annotated[int | None, BeforeValidator(blank_to_none)]
OptionalStr = Annotated[str | None, BeforeValidator(blank_to_none)]


class CanvasModel(BaseModel):
    """Base for everything stored in a flow definition.

    Documents use camelCase keys; Python code uses the snake_case field names. Both are accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


def field_name_for(model_cls: type[BaseModel], key: str) -> str:
    """Map a camelCase alias (or a field name) to the model's field name."""
    if key in model_cls.model_fields:
        return key
    for name, info in model_cls.model_fields.items():
        if info.alias == key:
            return name
    return key
