"""
Database query helpers shared by the services.

Usage
-----
::

    from utils.db_helpers import get_or_raise, next_number

    loan = get_or_raise(Loan, loan_id, LoanNotFound)
    loan.loan_number = next_number(Loan.loan_number)
"""
from datetime import datetime, timezone

from sqlalchemy import func

from extensions import db


def get_or_raise(model, record_id, exc_class, for_update=False):
    """Fetch *model* by primary key or raise *exc_class*.

    With ``for_update=True`` the row is read with ``SELECT ... FOR UPDATE`` so a
    concurrent writer on another connection blocks until this transaction ends
    (ignored by SQLite).
    """
    if record_id is None:
        raise exc_class(f'{model.__name__} id is required')

    query = db.session.query(model).filter(model.id == record_id)
    if for_update:
        query = query.with_for_update()
    record = query.first()
    if record is None:
        raise exc_class(f'{model.__name__} {record_id} not found')
    return record


def next_number(column):
    """Return max(column) + 1, or 1 for an empty table."""
    current = db.session.query(func.max(column)).scalar()
    return (current or 0) + 1


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money(value):
    """Serialise a Decimal amount as a two-decimal string (None stays None)."""
    if value is None:
        return None
    return f'{value:.2f}'


def isoformat(value):
    return value.isoformat() if value is not None else None
