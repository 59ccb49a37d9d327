"""Inkwell Engine — config, execution context, errors, structured logging."""

from inkwell.engine.context import ExecutionContext, execution_context  # noqa: F401
from inkwell.engine.errors import (  # noqa: F401
    InkwellConfigError,
    InkwellError,
    InkwellNotFoundError,
    InkwellRecordError,
    InkwellSecurityError,
    InkwellSessionError,
    InkwellValidationError,
)

__all__ = [
    "ExecutionContext",
    "execution_context",
    "InkwellError",
    "InkwellSessionError",
    "InkwellSecurityError",
    "InkwellNotFoundError",
    "InkwellValidationError",
    "InkwellRecordError",
    "InkwellConfigError",
]
