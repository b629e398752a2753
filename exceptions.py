"""Typed failures raised by the loan ledger.

Every failure propagates to the caller; nothing in the ledger retries.
Reconciliation is idempotent, so a caller may simply call it again.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class InvalidLoanTerms(LedgerError):
    """Raised when principal, interest rate or term is out of range."""


class InvalidPayment(LedgerError):
    """Raised when a payment amount is not a positive sum of money."""


class EntityNotFound(LedgerError):
    """Raised when a referenced record does not exist."""


class CustomerNotFound(EntityNotFound):
    pass


class LoanNotFound(EntityNotFound):
    pass


class PaymentNotFound(EntityNotFound):
    pass


class ReconciliationFailure(LedgerError):
    """Raised when the recompute-and-persist pass for a loan did not complete.

    Nothing from the failed pass is committed; the original error is chained
    as ``__cause__``.
    """

    def __init__(self, loan_id, message=None):
        self.loan_id = loan_id
        super().__init__(message or f'Reconciliation failed for loan {loan_id}')
