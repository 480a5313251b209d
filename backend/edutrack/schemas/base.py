from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Type, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from edutrack.core.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive UTC; naive values are taken as UTC"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Every stored timestamp is naive UTC
UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (snake_case also accepted)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def field_errors(error: PydanticValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]) or None, "message": err["msg"]}
        for err in error.errors()
    ]


def parse_form(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate multipart form fields with a request model"""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", errors=field_errors(e)) from e
