"""Adapters that turn schemas into the validator contract used by steps."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import StepValidationError


class Validator(Protocol):
    """Checks a value against a schema, returning the parsed value."""

    def validate(self, data: Any) -> Any:
        ...


class AnyValidator:
    """Accepts every value unchanged."""

    def validate(self, data: Any) -> Any:
        return data


class TypeAdapterValidator:
    """Validate with a pydantic ``TypeAdapter``.

    Types, annotations such as ``list[int]`` and ``BaseModel`` subclasses are
    all accepted.
    """

    def __init__(self, adapter: TypeAdapter) -> None:
        self.adapter = adapter

    def validate(self, data: Any) -> Any:
        return self.adapter.validate_python(data)


class ParseValidator:
    """Wrap any object exposing ``parse(data)``."""

    def __init__(self, parse: Callable[[Any], Any]) -> None:
        self._parse = parse

    def validate(self, data: Any) -> Any:
        return self._parse(data)


def as_validator(schema: Any) -> Validator:
    """Return a validator for ``schema``.

    ``None`` accepts anything. Objects already implementing ``validate`` are
    returned as-is.
    """
    if schema is None:
        return AnyValidator()
    if isinstance(schema, (AnyValidator, TypeAdapterValidator, ParseValidator)):
        return schema
    if isinstance(schema, TypeAdapter):
        return TypeAdapterValidator(schema)
    parse = getattr(schema, "parse", None)
    if callable(parse) and not isinstance(schema, type):
        return ParseValidator(parse)
    return TypeAdapterValidator(TypeAdapter(schema))


def validate(validator: Validator, data: Any, contract: str, subject: str) -> Any:
    """Run ``validator`` and translate rejections into ``StepValidationError``."""
    try:
        return validator.validate(data)
    except (PydanticValidationError, TypeError, ValueError) as exc:
        raise StepValidationError(contract, subject, str(exc)) from exc
