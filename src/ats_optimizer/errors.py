"""Exception taxonomy for the optimization engine.

Recoverable errors degrade a single round (a matcher batch, a revision
attempt); everything else aborts the run and surfaces to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """One field-level validation problem."""

    field: str
    message: str
    received: Any = None

    def __str__(self) -> str:
        if self.received is None:
            return f"{self.field}: {self.message}"
        return f"{self.field}: {self.message} (received {self.received!r})"


class OptimizerError(Exception):
    """Base class for all engine errors."""

    recoverable: bool = False


class InputValidationError(OptimizerError, ValueError):
    """Bad input shape. Never retried."""

    def __init__(self, message: str, errors: list[FieldError] | None = None):
        self.errors = list(errors or [])
        if self.errors:
            details = "; ".join(str(e) for e in self.errors)
            message = f"{message}: {details}"
        super().__init__(message)


class ConfigurationError(InputValidationError):
    """Invalid configuration, raised before any round starts."""

    def __init__(self, field: str, message: str, received: Any = None):
        self.field = field
        super().__init__(
            "Invalid configuration",
            [FieldError(field=field, message=message, received=received)],
        )


class CapabilityError(OptimizerError):
    """The text-understanding service call failed."""

    recoverable = True


class CapabilityTimeoutError(CapabilityError):
    """Transient failure that survived every retry."""


class CapabilityAuthError(CapabilityError):
    """The service rejected our credentials. Fatal to the whole run."""

    recoverable = False


class ParsingError(OptimizerError, ValueError):
    """The service returned a structure that fails its schema."""

    def __init__(self, message: str, snippet: str | None = None):
        self.snippet = snippet
        if snippet:
            message = f"{message}: {snippet[:200]}"
        super().__init__(message)


class SemanticAnalysisError(OptimizerError):
    """A matching batch failed; its elements degrade to gaps."""

    recoverable = True


class ScoringError(OptimizerError):
    """Malformed intermediate data discovered while scoring."""


class IterationError(OptimizerError):
    """The revision step failed for one attempt."""

    recoverable = True
