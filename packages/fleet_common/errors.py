"""Exceptions shared by the delivery domain helpers and the web app."""

from __future__ import annotations

from typing import Dict, Optional


class DeliveryAppError(Exception):
    """Base class for errors surfaced to users as a notification."""

    default_message = "The operation could not be completed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(DeliveryAppError):
    """Local validation failure scoped to one or more form fields."""

    default_message = "Please correct the highlighted errors."

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        super().__init__(message)
        self.errors = dict(errors)


class CalculationPrecondition(DeliveryAppError):
    """An action was blocked because its inputs cannot produce a result.

    Raised before any store call, for example when exporting an empty
    selection or billing at a non-positive rate.
    """
