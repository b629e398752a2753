"""
Shared pytest fixtures for the Daily Ledger test suite.

All tests run against an in-memory SQLite database (TestingConfig).
A single app context is pushed for the whole session so that SQLAlchemy
objects remain attached throughout.  After each test, clean_db wipes all
rows so tests are fully independent.
"""
from datetime import date
from decimal import Decimal

import pytest
from app import create_app
from extensions import db as _db


# ---------------------------------------------------------------------------
# Application / database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture(scope='session')
def app():
    """Create a test Flask application with an in-memory SQLite database."""
    application = create_app('testing')
    ctx = application.app_context()
    ctx.push()
    _db.create_all()
    yield application
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Wipe every table after each test so tests never share state."""
    yield
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.expunge_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------------
# Common model helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def customer(app):
    from services.customer_service import CustomerService
    return CustomerService.create_customer(name='Nimal Perera', phone='0771234567', nic='901234567V')


@pytest.fixture
def loan(app, customer):
    """10,000 at 20% flat over 30 days from 2024-01-01: 400.00 a day, 12,000.00 in total."""
    from services.loan_service import LoanService
    return LoanService.create_loan(
        customer_id=customer.id,
        principal=Decimal('10000'),
        interest_rate=Decimal('20'),
        term_days=30,
        start_date=date(2024, 1, 1),
    )
