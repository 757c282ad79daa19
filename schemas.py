from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, create_model
from sqlalchemy import Date, DateTime, Integer, Numeric

from errors import ClientInputError
from models import CreditApplication

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _python_type(column):
    if isinstance(column.type, Integer):
        return int
    if isinstance(column.type, Numeric):
        return float
    if isinstance(column.type, DateTime):
        return datetime
    if isinstance(column.type, Date):
        return date
    return str


# Every column optional and typed; unknown keys are rejected.
ApplicationFields = create_model(
    "ApplicationFields",
    __config__=ConfigDict(extra="forbid", allow_inf_nan=False, coerce_numbers_to_str=True),
    **{
        column.name: (Optional[_python_type(column)], None)
        for column in CreditApplication.__table__.columns
    },
)


class StatusUpdateIn(BaseModel):
    status: Optional[str] = None
    reason: Optional[str] = None


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    if first.get("type") == "extra_forbidden":
        return f"Unknown field: {loc}"
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))


def _store_value(value):
    # dates bound as text so every driver sees the same literal
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    return value


def validate_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Type-check a column -> value mapping; returns the supplied keys only, in input order."""
    if not isinstance(payload, dict):
        raise ClientInputError("Request body must be a JSON object")
    try:
        model = ApplicationFields.model_validate(payload)
    except ValidationError as e:
        raise ClientInputError(_describe(e), {"errors": e.errors(include_url=False, include_context=False)})
    return {key: _store_value(getattr(model, key)) for key in payload}
