"""Errors raised by the academics service layer.

Malformed input is reported with `django.core.exceptions.ValidationError`
(always carrying every field violation) and scope failures with
`django.core.exceptions.PermissionDenied`; the classes below cover the rest.
"""
from contextlib import contextmanager

from django.db import IntegrityError, InterfaceError, OperationalError


class LedgerError(Exception):
    default_message = 'Class ledger error'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFound(LedgerError):
    default_message = 'Not found'


class Conflict(LedgerError):
    """An invariant would be violated by the write; retry the whole operation."""
    default_message = 'Conflicting record exists'


class InvalidState(LedgerError):
    default_message = 'Record is not in a state that allows this operation'


class Unavailable(LedgerError):
    """The backing store failed; retry policy belongs to the caller."""
    default_message = 'Backing store unavailable'


@contextmanager
def store_errors(conflict_message=None):
    """Translate database failures raised inside the block into ledger errors."""
    try:
        yield
    except IntegrityError as exc:
        raise Conflict(conflict_message or str(exc)) from exc
    except (OperationalError, InterfaceError) as exc:
        raise Unavailable(str(exc)) from exc
