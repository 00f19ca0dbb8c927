"""Exception types raised by the TCO engine."""

from typing import Iterable, List


class ValidationError(ValueError):
    """Raised when a TCO input or override set is invalid.

    Collects every violated constraint rather than stopping at the first.

    Attributes:
        errors: One human-readable message per violation.
    """

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__("Invalid TCO input: " + "; ".join(self.errors))


class UnknownIdentifierError(KeyError):
    """Raised when a stress test, analysis variable or registry id is not registered."""

    def __init__(self, kind: str, name: str, available: Iterable[str]):
        self.kind = kind
        self.name = name
        self.available = sorted(available)
        super().__init__(f"Unknown {kind} '{name}'. Available: {self.available}")

    def __str__(self) -> str:
        return self.args[0]
