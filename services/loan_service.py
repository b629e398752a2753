"""
Loan Service
============
Loan origination and payment collection for daily-collection loans.

Every payment mutation (record, update, delete) finishes with a full
reconciliation of the loan: the complete payment history is replayed through
``services.loan_calculator.reconcile`` and every derived field is written back
in the same transaction as the raw change.  Either all of it commits or none of
it does.

Concurrency
-----------
Mutations of one loan run inside ``loan_locks.hold(loan_id)`` and read the loan
row with ``SELECT ... FOR UPDATE``.  The lock is only taken once the loan is
known to exist.  Different loans never share a lock.

Primary entry points
--------------------
  create_loan()     — validate terms, generate the schedule, assign a loan number
  update_loan()     — amend terms (regenerates the schedule), notes or status
  record_payment()  — add a payment and reconcile
  update_payment()  — amend amount / note / paid_at and reconcile
  delete_payment()  — remove a payment and reconcile
  recalculate()     — reconcile without changing any raw input
"""
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import InvalidOperation

from flask import current_app

from exceptions import (
    CustomerNotFound,
    InvalidPayment,
    LoanNotFound,
    PaymentNotFound,
    ReconciliationFailure,
)
from extensions import db
from models.customers import Customer
from models.loans import Loan
from models.loan_payments import LoanPayment
from services.loan_calculator import (
    DEFAULT_WARNING_RATIO,
    LoanStatus,
    ZERO,
    generate_schedule,
    reconcile,
    round2,
    summarize_arrears,
    to_decimal,
)
from utils.db_helpers import get_or_raise, next_number, utcnow
from utils.locks import loan_locks


TERM_FIELDS = ('principal', 'interest_rate', 'term_days', 'start_date')


class LoanService:
    """
    Persistence and orchestration around the pure loan calculator.

    The calculator never sees the database; this class loads raw inputs, calls
    it, and stores what it returns.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_loan(loan_id):
        return get_or_raise(Loan, loan_id, LoanNotFound)

    @staticmethod
    def get_payment(payment_id):
        return get_or_raise(LoanPayment, payment_id, PaymentNotFound)

    @staticmethod
    def list_loans(status=None, customer_id=None):
        """Loans, newest loan number first, optionally filtered."""
        query = Loan.query
        if status:
            query = query.filter_by(status=status)
        if customer_id:
            query = query.filter_by(customer_id=customer_id)
        return query.order_by(Loan.loan_number.desc()).all()

    @staticmethod
    def list_payments(loan_id):
        """Payments of a loan, most recent paid_at first."""
        LoanService.get_loan(loan_id)
        return LoanPayment.query.filter_by(loan_id=loan_id)\
            .order_by(LoanPayment.paid_at.desc(), LoanPayment.id.desc()).all()

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    @staticmethod
    def create_loan(customer_id, principal, interest_rate, term_days, start_date=None, notes=None):
        """
        Originate a loan and materialise its schedule.

        Args:
            customer_id:   ID of the borrowing Customer.
            principal:     Amount lent.
            interest_rate: Flat interest for the whole term, in percent.
            term_days:     Number of daily installments.
            start_date:    First collection day (defaults to today).
            notes:         Free text.

        Returns:
            Loan, persisted with status 'active' and a fresh schedule.

        Raises:
            InvalidLoanTerms: before anything is written.
            CustomerNotFound: if the customer does not exist.
        """
        calculation = generate_schedule(principal, interest_rate, term_days, start_date)
        customer = get_or_raise(Customer, customer_id, CustomerNotFound)

        try:
            loan = Loan(
                loan_number=next_number(Loan.loan_number),
                customer_id=customer.id,
                status=LoanStatus.ACTIVE,
                notes=notes,
            )
            loan.apply_schedule(calculation)
            db.session.add(loan)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f'Loan #{loan.loan_number} created for customer {customer.id}: '
            f'{calculation.total_amount} over {calculation.term_days} days '
            f'({calculation.daily_amount}/day)'
        )
        return loan

    @staticmethod
    def update_loan(loan_id, principal=None, interest_rate=None, term_days=None,
                    start_date=None, notes=None, status=None):
        """
        Amend a loan.

        Changing any of principal, interest_rate, term_days or start_date
        regenerates the whole schedule.  Day-level allocations are reset to
        zero and not replayed; the next payment mutation or recalculate()
        allocates the existing payments onto the new schedule.

        Returns:
            (Loan, warnings), where warnings is a list of operator-facing strings.
        """
        if status is not None and status not in LoanStatus.ALL:
            raise ValueError(f'Unknown loan status: {status}')

        warnings = []
        with LoanService._locked(loan_id) as loan:

            try:
                requested = dict(principal=principal, interest_rate=interest_rate,
                                 term_days=term_days, start_date=start_date)
                if any(value is not None for value in requested.values()):
                    terms = {name: getattr(loan, name) if requested[name] is None else requested[name]
                             for name in TERM_FIELDS}
                    calculation = generate_schedule(**terms)
                    loan.apply_schedule(calculation)

                    payment_count = LoanPayment.query.filter_by(loan_id=loan.id).count()
                    if payment_count:
                        message = (f'Loan #{loan.loan_number} terms changed with {payment_count} '
                                   f'payment(s) recorded; schedule allocations were reset')
                        warnings.append(message)
                        current_app.logger.warning(message)

                if notes is not None:
                    loan.notes = notes
                if status is not None:
                    loan.status = status

                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

        current_app.logger.info(f'Loan #{loan.loan_number} updated')
        return loan, warnings

    @staticmethod
    def delete_loan(loan_id):
        """Delete a loan together with its schedule and payments."""
        with LoanService._locked(loan_id) as loan:
            loan_number = loan.loan_number
            try:
                db.session.delete(loan)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        loan_locks.discard(loan_id)
        current_app.logger.info(f'Loan #{loan_number} deleted')

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @staticmethod
    def record_payment(loan_id, amount_paid, paid_at=None, note=None, collected_by=None):
        """
        Record cash collected against a loan and reconcile the loan.

        Args:
            loan_id:      ID of the Loan.
            amount_paid:  Positive amount collected.
            paid_at:      When it was collected (defaults to now).  May be in the past.
            note:         Free text.
            collected_by: Name of the collector.

        Returns:
            LoanPayment with previous_pending / new_pending already filled in.

        Raises:
            InvalidPayment, LoanNotFound, ReconciliationFailure
        """
        amount = LoanService._validated_amount(amount_paid)
        paid_at = LoanService._normalize_paid_at(paid_at)

        with LoanService._locked(loan_id) as loan:
            payment = LoanPayment(
                loan_id=loan.id,
                customer_id=loan.customer_id,
                amount_paid=amount,
                paid_at=paid_at,
                note=note,
                collected_by=collected_by,
                scheduled_amount=loan.daily_amount,
                previous_pending=ZERO,
                new_pending=ZERO,
            )
            db.session.add(payment)
            LoanService._reconcile_and_commit(loan)

        current_app.logger.info(
            f'Payment {payment.id} of {amount} recorded on loan #{loan.loan_number} '
            f'(pending {payment.previous_pending} -> {payment.new_pending})'
        )
        return payment

    @staticmethod
    def update_payment(payment_id, amount_paid=None, note=None, paid_at=None):
        """Amend a payment's raw fields and reconcile its loan."""
        amount = LoanService._validated_amount(amount_paid) if amount_paid is not None else None
        paid_at = LoanService._normalize_paid_at(paid_at) if paid_at is not None else None

        loan_id = LoanService._loan_id_of(payment_id)
        with LoanService._locked(loan_id) as loan:
            payment = get_or_raise(LoanPayment, payment_id, PaymentNotFound)

            if amount is not None:
                payment.amount_paid = amount
            if note is not None:
                payment.note = note
            if paid_at is not None:
                payment.paid_at = paid_at

            LoanService._reconcile_and_commit(loan)

        current_app.logger.info(f'Payment {payment_id} on loan #{loan.loan_number} updated')
        return payment

    @staticmethod
    def delete_payment(payment_id):
        """Delete a payment and reconcile its loan.  Returns the loan id."""
        loan_id = LoanService._loan_id_of(payment_id)
        with LoanService._locked(loan_id) as loan:
            payment = get_or_raise(LoanPayment, payment_id, PaymentNotFound)
            db.session.delete(payment)
            LoanService._reconcile_and_commit(loan)

        current_app.logger.info(f'Payment {payment_id} on loan #{loan.loan_number} deleted')
        return loan_id

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    @staticmethod
    def recalculate(loan_id):
        """Rebuild a loan's derived state from its terms and payments."""
        with LoanService._locked(loan_id) as loan:
            return LoanService._reconcile_and_commit(loan)

    @staticmethod
    def recalculate_all():
        """Recalculate every loan.  Returns the number of loans processed."""
        loan_ids = [row.id for row in db.session.query(Loan.id).order_by(Loan.id).all()]
        for loan_id in loan_ids:
            LoanService.recalculate(loan_id)
        return len(loan_ids)

    @staticmethod
    def _reconcile_and_commit(loan):
        """
        Reconcile *loan* and commit the raw change pending in the session together
        with every derived field.

        Raises:
            ReconciliationFailure: nothing was committed; the session is rolled back.
        """
        loan_id = loan.id
        try:
            db.session.flush()
            payments = LoanPayment.query.filter_by(loan_id=loan_id).all()
            result = reconcile(loan, payments, LoanService._warning_ratio())

            by_id = {payment.id: payment for payment in payments}
            for balance in result.payments:
                payment = by_id[balance.payment_id]
                payment.previous_pending = balance.previous_pending
                payment.new_pending = balance.new_pending
                payment.scheduled_amount = balance.scheduled_amount

            entries = {entry.day: entry for entry in loan.schedule}
            for day in result.schedule:
                entry = entries[day.day]
                entry.paid_amount = day.paid_amount
                entry.remaining_balance = day.remaining_balance

            loan.status = result.status
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception(f'Reconciliation of loan {loan_id} failed')
            raise ReconciliationFailure(loan_id) from exc

        if result.overpaid_amount > 0:
            current_app.logger.warning(
                f'Loan {loan_id} is overpaid by {result.overpaid_amount}; excess is not tracked'
            )
        current_app.logger.debug(
            f'Loan {loan_id} reconciled: {len(result.payments)} payment(s), '
            f'remaining {result.remaining_balance}, status {result.status}'
        )
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def get_payment_day_number(payment):
        """1-based position of *payment* in its loan's collection order."""
        earlier = LoanPayment.query.filter(
            LoanPayment.loan_id == payment.loan_id,
            db.or_(
                LoanPayment.paid_at < payment.paid_at,
                db.and_(LoanPayment.paid_at == payment.paid_at, LoanPayment.id <= payment.id),
            ),
        ).count()
        return max(earlier, 1)

    @staticmethod
    def get_payment_statistics(loan_id, as_of=None):
        """Summary figures for one loan."""
        loan = LoanService.get_loan(loan_id)
        payments = LoanPayment.query.filter_by(loan_id=loan_id).all()

        total_amount = round2(loan.total_amount)
        total_paid = round2(sum((to_decimal(p.amount_paid) for p in payments), ZERO))
        arrears = summarize_arrears(loan.schedule, as_of)

        return {
            'payment_count': len(payments),
            'total_amount': total_amount,
            'total_paid': total_paid,
            'outstanding': max(ZERO, total_amount - total_paid),
            'overpaid_amount': max(ZERO, total_paid - total_amount),
            'days_fully_paid': sum(1 for e in loan.schedule if e.paid_amount >= e.planned_amount),
            'days_remaining': sum(1 for e in loan.schedule if e.paid_amount < e.planned_amount),
            **arrears,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    @contextmanager
    def _locked(loan_id):
        """Hold the loan's lock and yield the loan read with FOR UPDATE.

        No lock is created for a loan id that does not exist.
        """
        if loan_id is None:
            raise LoanNotFound('Loan id is required')
        if db.session.query(Loan.id).filter(Loan.id == loan_id).scalar() is None:
            raise LoanNotFound(f'Loan {loan_id} not found')

        with loan_locks.hold(loan_id):
            # Drop anything this session cached before the lock was taken
            db.session.expire_all()
            try:
                loan = get_or_raise(Loan, loan_id, LoanNotFound, for_update=True)
            except LoanNotFound:
                # Deleted between the check and the lock
                loan_locks.discard(loan_id)
                raise
            yield loan

    @staticmethod
    def _loan_id_of(payment_id):
        if payment_id is None:
            raise PaymentNotFound('LoanPayment id is required')
        loan_id = db.session.query(LoanPayment.loan_id).filter(LoanPayment.id == payment_id).scalar()
        if loan_id is None:
            raise PaymentNotFound(f'LoanPayment {payment_id} not found')
        return loan_id

    @staticmethod
    def _warning_ratio():
        return current_app.config.get('LEDGER_WARNING_RATIO', DEFAULT_WARNING_RATIO)

    @staticmethod
    def _validated_amount(value):
        try:
            amount = to_decimal(value)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidPayment(f'Payment amount {value!r} is not a number')
        if not amount.is_finite() or amount <= 0:
            raise InvalidPayment('Payment amount must be greater than zero')
        amount = round2(amount)
        if amount <= 0:
            raise InvalidPayment('Payment amount must be at least one cent')
        return amount

    @staticmethod
    def _normalize_paid_at(value):
        """Naive UTC datetime from a datetime, date, ISO string or None (now)."""
        if value is None:
            return utcnow()
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace('Z', '+00:00'))
            except ValueError:
                raise InvalidPayment(f'Payment time {value!r} is not an ISO date or datetime')
        elif isinstance(value, date) and not isinstance(value, datetime):
            value = datetime.combine(value, datetime.min.time())
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
