from __future__ import annotations
from typing import Any


class AutomationError(Exception):
    """Base class for errors raised at the edit boundary."""


class ConfigurationError(AutomationError):
    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value
        self.message = message


class InterlockViolation(AutomationError):
    def __init__(self, family: str, reason: str) -> None:
        super().__init__(reason)
        self.family = family
        self.reason = reason
