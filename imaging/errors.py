"""Validation errors and the tagged parse result.

The parser never raises for bad input. It returns ``Ok`` with the parsed
request or ``Err`` with the first ``ValidationError`` it met, and
:func:`error_document` is the single place that turns an error into the
JSON body clients receive.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

DOCS_URL: str = os.getenv("DOCS_URL", "https://imges.dev/docs")

T = TypeVar("T")


class ErrorKind(str, Enum):
    malformed_input = "malformed_input"
    out_of_range = "out_of_range"
    unsupported_value = "unsupported_value"


class ValidationError(BaseModel):
    """Description of the first invalid field in a request."""

    kind: ErrorKind
    field: str
    message: str
    received: str
    expected: str
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: ValidationError


Result = Union[Ok[T], Err]

_ERROR_TITLES = {
    ErrorKind.malformed_input: "MalformedInput",
    ErrorKind.out_of_range: "OutOfRange",
    ErrorKind.unsupported_value: "UnsupportedValue",
}

# Example URLs shown next to an error, keyed by the failing field.
_FIELD_EXAMPLES = {
    "dimensions": ["/800x600", "/300", "/1200x630@2x.png"],
    "format": ["/800x600.png", "/800x600.jpg", "/800x600.webp"],
    "background-color": ["/800x600/3b82f6", "/800x600/random", "/800x600/3b82f6-8b5cf6"],
    "gradient-color-2": ["/800x600/3b82f6-8b5cf6", "/800x600/ff0000-random"],
    "foreground-color": ["/800x600/3b82f6/ffffff", "/800x600/3b82f6/random"],
}
_DEFAULT_EXAMPLES = ["/800x600/3b82f6/ffffff?text=Hello", "/400x300?pattern=dots&noise=10"]


def error_document(error: ValidationError) -> dict[str, Any]:
    """Build the JSON body returned for a validation failure."""
    return {
        "error": _ERROR_TITLES[error.kind],
        "field": error.field,
        "message": error.message,
        "received": error.received,
        "expected": error.expected,
        "suggestion": error.suggestion,
        "docs": DOCS_URL,
        "examples": _FIELD_EXAMPLES.get(error.field, _DEFAULT_EXAMPLES),
    }


def internal_error_document() -> dict[str, Any]:
    """JSON body for an unexpected rendering failure. Carries no detail."""
    return {
        "error": "InternalRenderingFailure",
        "message": "The image could not be generated.",
        "docs": DOCS_URL,
    }
