# Models package - Import all models for Flask-SQLAlchemy

from models.customers import Customer
from models.loans import Loan, LoanScheduleEntry
from models.loan_payments import LoanPayment

__all__ = [
    'Customer',
    'Loan',
    'LoanScheduleEntry',
    'LoanPayment',
]
