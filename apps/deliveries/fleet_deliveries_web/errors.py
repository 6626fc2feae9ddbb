"""Error taxonomy for the Fleet Deliveries web app.

Validation and calculation errors come from :mod:`packages.fleet_common`;
this module adds the store failures and the translation from SQLAlchemy
exceptions.
"""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from packages.fleet_common import (
    CalculationPrecondition,
    DeliveryAppError,
    ValidationError,
)

# Row-level security rejections mention the policy in the error text.
POLICY_MARKER = "policy"


class StoreError(DeliveryAppError):
    """A call to the record store failed."""

    default_message = "The record store could not complete the request."


class PermissionDenied(StoreError):
    """The store rejected the operation through a row-level access policy."""

    default_message = "Permission denied: the record is protected by an access policy."


class RemoteFailure(StoreError):
    """Generic store or network failure."""


def _error_text(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def translate_store_error(exc: SQLAlchemyError) -> StoreError:
    """Map a SQLAlchemy exception onto :class:`PermissionDenied` or :class:`RemoteFailure`."""

    text = _error_text(exc).strip()
    if POLICY_MARKER in text.lower():
        return PermissionDenied(f"{PermissionDenied.default_message} ({text})")
    return RemoteFailure(text or None)


__all__ = [
    "CalculationPrecondition",
    "DeliveryAppError",
    "PermissionDenied",
    "RemoteFailure",
    "StoreError",
    "ValidationError",
    "translate_store_error",
]
