"""
Integration tests for LoanService.

These tests create real database objects (in-memory SQLite) and call the
service methods, asserting on the stored schedule, the per-payment running
balances and the loan status after every mutation.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from exceptions import (
    CustomerNotFound,
    InvalidLoanTerms,
    InvalidPayment,
    LoanNotFound,
    PaymentNotFound,
    ReconciliationFailure,
)
from extensions import db
from models.loans import Loan, LoanScheduleEntry
from models.loan_payments import LoanPayment
from services.loan_calculator import LoanStatus
from services.loan_service import LoanService
from utils.locks import loan_locks


D = Decimal


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _on_day(day, hour=9):
    """Collection time on *day* of the standard 2024-01-01 loan."""
    return datetime(2024, 1, 1, hour) + timedelta(days=day - 1)


def _pay(loan, amount, day=1, hour=9, **kwargs):
    return LoanService.record_payment(loan.id, D(str(amount)), paid_at=_on_day(day, hour), **kwargs)


def _entry(loan, day):
    return LoanScheduleEntry.query.filter_by(loan_id=loan.id, day=day).one()


def _pending(payment_id):
    payment = db.session.get(LoanPayment, payment_id)
    return payment.previous_pending, payment.new_pending


# ---------------------------------------------------------------------------
# create_loan
# ---------------------------------------------------------------------------

class TestCreateLoan:
    def test_persists_terms_and_schedule(self, loan):
        assert loan.loan_number == 1
        assert loan.status == LoanStatus.ACTIVE
        assert loan.total_interest == D('2000.00')
        assert loan.total_amount == D('12000.00')
        assert loan.daily_amount == D('400.00')
        assert loan.end_date == date(2024, 1, 30)
        assert LoanScheduleEntry.query.filter_by(loan_id=loan.id).count() == 30
        assert _entry(loan, 1).remaining_balance == D('11600.00')
        assert _entry(loan, 30).due_amount == D('12000.00')

    def test_loan_numbers_are_sequential(self, loan, customer):
        second = LoanService.create_loan(customer.id, D('5000'), D('10'), 10, date(2024, 2, 1))
        assert second.loan_number == loan.loan_number + 1

    def test_invalid_terms_write_nothing(self, customer):
        with pytest.raises(InvalidLoanTerms):
            LoanService.create_loan(customer.id, D('0'), D('20'), 30, date(2024, 1, 1))
        assert Loan.query.count() == 0
        assert LoanScheduleEntry.query.count() == 0

    def test_unknown_customer(self, app):
        with pytest.raises(CustomerNotFound):
            LoanService.create_loan(999, D('10000'), D('20'), 30, date(2024, 1, 1))
        assert Loan.query.count() == 0


# ---------------------------------------------------------------------------
# record_payment
# ---------------------------------------------------------------------------

class TestRecordPayment:
    def test_first_installment(self, loan):
        payment = _pay(loan, '400.00')

        assert payment.previous_pending == D('12000.00')
        assert payment.new_pending == D('11600.00')
        assert payment.scheduled_amount == D('400.00')
        assert payment.customer_id == loan.customer_id
        assert _entry(loan, 1).paid_amount == D('400.00')
        assert _entry(loan, 2).paid_amount == D('0.00')
        assert db.session.get(Loan, loan.id).status == LoanStatus.WARNING

    def test_full_repayment_closes_the_loan(self, loan):
        _pay(loan, '12000.00')
        entries = LoanScheduleEntry.query.filter_by(loan_id=loan.id).all()
        assert all(e.paid_amount == D('400.00') for e in entries)
        assert _entry(loan, 30).remaining_balance == D('0.00')
        assert db.session.get(Loan, loan.id).status == LoanStatus.CLOSED

    def test_backdated_payment_rewrites_later_balances(self, loan):
        later = _pay(loan, '500', day=3)
        assert _pending(later.id) == (D('12000.00'), D('11500.00'))

        earlier = _pay(loan, '300', day=1)

        assert _pending(earlier.id) == (D('12000.00'), D('11700.00'))
        assert _pending(later.id) == (D('11700.00'), D('11200.00'))

    def test_same_paid_at_orders_by_id(self, loan):
        first = _pay(loan, '100', day=2)
        second = _pay(loan, '200', day=2)
        assert _pending(first.id) == (D('12000.00'), D('11900.00'))
        assert _pending(second.id) == (D('11900.00'), D('11700.00'))

    def test_overpayment_floors_at_zero(self, loan):
        _pay(loan, '11000', day=1)
        extra = _pay(loan, '2000', day=2)
        assert _pending(extra.id) == (D('1000.00'), D('0.00'))
        assert db.session.get(Loan, loan.id).status == LoanStatus.CLOSED

    def test_defaults_paid_at_to_now(self, loan):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        payment = LoanService.record_payment(loan.id, D('400'))
        assert payment.paid_at >= before - timedelta(seconds=1)

    def test_aware_paid_at_is_stored_as_utc(self, loan):
        colombo = timezone(timedelta(hours=5, minutes=30))
        payment = LoanService.record_payment(loan.id, D('400'), paid_at=datetime(2024, 1, 2, 10, 30, tzinfo=colombo))
        assert payment.paid_at == datetime(2024, 1, 2, 5, 0)

    def test_iso_string_paid_at(self, loan):
        payment = LoanService.record_payment(loan.id, D('400'), paid_at='2024-01-05T08:00:00Z')
        assert payment.paid_at == datetime(2024, 1, 5, 8, 0)

    def test_bad_paid_at(self, loan):
        with pytest.raises(InvalidPayment):
            LoanService.record_payment(loan.id, D('400'), paid_at='yesterday')

    @pytest.mark.parametrize('amount', [D('0'), D('-5'), D('0.001'), 'abc', None])
    def test_invalid_amount_writes_nothing(self, loan, amount):
        with pytest.raises(InvalidPayment):
            LoanService.record_payment(loan.id, amount, paid_at=_on_day(1))
        assert LoanPayment.query.count() == 0

    def test_unknown_loan(self, app):
        with pytest.raises(LoanNotFound):
            LoanService.record_payment(999, D('400'))

    def test_reconciliation_failure_rolls_back_the_payment(self, loan, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError('boom')

        monkeypatch.setattr('services.loan_service.reconcile', explode)

        with pytest.raises(ReconciliationFailure) as excinfo:
            _pay(loan, '400')

        assert excinfo.value.loan_id == loan.id
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert LoanPayment.query.count() == 0
        assert _entry(loan, 1).paid_amount == D('0.00')


# ---------------------------------------------------------------------------
# update_payment / delete_payment
# ---------------------------------------------------------------------------

class TestAmendPayments:
    def test_amount_change_flows_to_later_payments(self, loan):
        first = _pay(loan, '400', day=1)
        second = _pay(loan, '400', day=2)

        LoanService.update_payment(first.id, amount_paid=D('1000'))

        assert _pending(first.id) == (D('12000.00'), D('11000.00'))
        assert _pending(second.id) == (D('11000.00'), D('10600.00'))
        assert _entry(loan, 3).paid_amount == D('400.00')
        assert _entry(loan, 4).paid_amount == D('200.00')

    def test_moving_paid_at_reorders(self, loan):
        first = _pay(loan, '100', day=1)
        second = _pay(loan, '300', day=2)

        LoanService.update_payment(first.id, paid_at=_on_day(5))

        assert _pending(second.id) == (D('12000.00'), D('11700.00'))
        assert _pending(first.id) == (D('11700.00'), D('11600.00'))

    def test_note_only_change_keeps_balances(self, loan):
        payment = _pay(loan, '400')
        updated = LoanService.update_payment(payment.id, note='Collected at the market')
        assert updated.note == 'Collected at the market'
        assert _pending(payment.id) == (D('12000.00'), D('11600.00'))

    def test_invalid_amount_leaves_payment_untouched(self, loan):
        payment = _pay(loan, '400')
        with pytest.raises(InvalidPayment):
            LoanService.update_payment(payment.id, amount_paid=D('0'))
        assert db.session.get(LoanPayment, payment.id).amount_paid == D('400.00')

    def test_unknown_payment(self, app):
        with pytest.raises(PaymentNotFound):
            LoanService.update_payment(999, amount_paid=D('1'))
        with pytest.raises(PaymentNotFound):
            LoanService.delete_payment(999)

    def test_deleting_a_payment_shifts_later_ones_up(self, loan):
        first = _pay(loan, '400', day=1)
        second = _pay(loan, '600', day=2)

        assert LoanService.delete_payment(first.id) == loan.id

        assert _pending(second.id) == (D('12000.00'), D('11400.00'))
        assert _entry(loan, 1).paid_amount == D('400.00')
        assert _entry(loan, 2).paid_amount == D('200.00')

    def test_deleting_the_only_payment_restores_the_loan(self, loan):
        payment = _pay(loan, '12000')
        assert db.session.get(Loan, loan.id).status == LoanStatus.CLOSED

        LoanService.delete_payment(payment.id)

        assert LoanPayment.query.count() == 0
        assert db.session.get(Loan, loan.id).status == LoanStatus.ACTIVE
        assert _entry(loan, 1).paid_amount == D('0.00')
        assert _entry(loan, 1).remaining_balance == D('11600.00')
        assert _entry(loan, 30).remaining_balance == D('0.00')

    def test_a_failed_delete_keeps_the_payment(self, loan, monkeypatch):
        payment = _pay(loan, '400')

        def explode(*args, **kwargs):
            raise RuntimeError('boom')

        monkeypatch.setattr('services.loan_service.reconcile', explode)
        with pytest.raises(ReconciliationFailure):
            LoanService.delete_payment(payment.id)

        assert db.session.get(LoanPayment, payment.id) is not None
        assert db.session.get(Loan, loan.id).status == LoanStatus.WARNING


# ---------------------------------------------------------------------------
# update_loan / delete_loan
# ---------------------------------------------------------------------------

class TestUpdateLoan:
    def test_notes_and_status(self, loan):
        updated, warnings = LoanService.update_loan(loan.id, notes='Moved to the evening route',
                                                    status=LoanStatus.WARNING)
        assert warnings == []
        assert updated.notes == 'Moved to the evening route'
        assert updated.status == LoanStatus.WARNING

    def test_unknown_status(self, loan):
        with pytest.raises(ValueError):
            LoanService.update_loan(loan.id, status='defaulted')

    def test_term_change_regenerates_the_schedule(self, loan):
        updated, warnings = LoanService.update_loan(loan.id, term_days=60)

        assert warnings == []
        assert updated.daily_amount == D('200.00')
        assert updated.end_date == date(2024, 2, 29)
        assert LoanScheduleEntry.query.filter_by(loan_id=loan.id).count() == 60
        assert _entry(loan, 1).remaining_balance == D('11800.00')

    def test_shorter_term_drops_surplus_days(self, loan):
        LoanService.update_loan(loan.id, term_days=10, principal=D('5000'))
        assert LoanScheduleEntry.query.filter_by(loan_id=loan.id).count() == 10
        assert db.session.get(Loan, loan.id).daily_amount == D('600.00')

    def test_term_change_with_payments_warns_and_waits_for_recalculate(self, loan):
        payment = _pay(loan, '400')

        _, warnings = LoanService.update_loan(loan.id, term_days=60)

        assert len(warnings) == 1
        assert 'payment' in warnings[0]
        assert _entry(loan, 1).paid_amount == D('0.00')

        LoanService.recalculate(loan.id)

        assert db.session.get(LoanPayment, payment.id).scheduled_amount == D('200.00')
        assert _entry(loan, 1).paid_amount == D('200.00')
        assert _entry(loan, 2).paid_amount == D('200.00')

    def test_invalid_terms_leave_the_loan_unchanged(self, loan):
        with pytest.raises(InvalidLoanTerms):
            LoanService.update_loan(loan.id, interest_rate=D('-1'))
        assert db.session.get(Loan, loan.id).total_amount == D('12000.00')

    def test_delete_removes_schedule_and_payments(self, loan):
        _pay(loan, '400')
        LoanService.delete_loan(loan.id)
        assert Loan.query.count() == 0
        assert LoanScheduleEntry.query.count() == 0
        assert LoanPayment.query.count() == 0

    def test_sub_cent_terms_are_stored_as_used(self, customer):
        created = LoanService.create_loan(customer.id, D('1000.005'), D('10'), 10, date(2024, 1, 1))
        assert created.principal == D('1000.01')
        total_before = created.total_amount

        updated, _ = LoanService.update_loan(created.id, start_date=date(2024, 2, 1))

        assert updated.principal == D('1000.01')
        assert updated.total_amount == total_before == D('1100.01')
        assert updated.start_date == date(2024, 2, 1)

    def test_delete_unknown_loan(self, app):
        with pytest.raises(LoanNotFound):
            LoanService.delete_loan(999)


# ---------------------------------------------------------------------------
# recalculate
# ---------------------------------------------------------------------------

class TestRecalculate:
    def test_repairs_tampered_derived_fields(self, loan):
        payment = _pay(loan, '400')
        stored = db.session.get(LoanPayment, payment.id)
        stored.new_pending = D('1.00')
        _entry(loan, 1).paid_amount = D('0.00')
        db.session.get(Loan, loan.id).status = LoanStatus.CLOSED
        db.session.commit()

        result = LoanService.recalculate(loan.id)

        assert result.remaining_balance == D('11600.00')
        assert _pending(payment.id) == (D('12000.00'), D('11600.00'))
        assert _entry(loan, 1).paid_amount == D('400.00')
        assert db.session.get(Loan, loan.id).status == LoanStatus.WARNING

    def test_is_idempotent(self, loan):
        _pay(loan, '400', day=1)
        _pay(loan, '250', day=2)
        first = LoanService.recalculate(loan.id)
        second = LoanService.recalculate(loan.id)
        assert first == second

    def test_recalculate_all(self, loan, customer):
        LoanService.create_loan(customer.id, D('5000'), D('10'), 10, date(2024, 2, 1))
        assert LoanService.recalculate_all() == 2

    def test_unknown_loan(self, app):
        with pytest.raises(LoanNotFound):
            LoanService.recalculate(999)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class TestReporting:
    def test_payment_statistics(self, loan):
        _pay(loan, '400', day=1)
        stats = LoanService.get_payment_statistics(loan.id, as_of=date(2024, 1, 3))

        assert stats['payment_count'] == 1
        assert stats['total_paid'] == D('400.00')
        assert stats['outstanding'] == D('11600.00')
        assert stats['overpaid_amount'] == D('0.00')
        assert stats['days_fully_paid'] == 1
        assert stats['days_remaining'] == 29
        assert stats['arrears_amount'] == D('800.00')
        assert stats['days_in_arrears'] == 2

    def test_day_number_follows_paid_at(self, loan):
        later = _pay(loan, '400', day=4)
        earlier = _pay(loan, '400', day=1)
        assert LoanService.get_payment_day_number(earlier) == 1
        assert LoanService.get_payment_day_number(later) == 2

    def test_list_payments_newest_first(self, loan):
        _pay(loan, '100', day=1)
        _pay(loan, '200', day=3)
        _pay(loan, '300', day=2)
        amounts = [p.amount_paid for p in LoanService.list_payments(loan.id)]
        assert amounts == [D('200.00'), D('300.00'), D('100.00')]

    def test_list_loans_by_status(self, loan, customer):
        other = LoanService.create_loan(customer.id, D('5000'), D('10'), 10, date(2024, 2, 1))
        _pay(loan, '400')
        assert [item.id for item in LoanService.list_loans(status=LoanStatus.WARNING)] == [loan.id]
        assert [item.id for item in LoanService.list_loans(status=LoanStatus.ACTIVE)] == [other.id]
        assert len(LoanService.list_loans(customer_id=customer.id)) == 2


# ---------------------------------------------------------------------------
# Per-loan locks
# ---------------------------------------------------------------------------

class TestLoanLocks:
    def test_unknown_loans_leave_no_lock_behind(self, app):
        before = len(loan_locks)
        for _ in range(5):
            with pytest.raises(LoanNotFound):
                LoanService.record_payment(999, D('1'))
            with pytest.raises(LoanNotFound):
                LoanService.recalculate(999)
            with pytest.raises(LoanNotFound):
                LoanService.update_loan(999, notes='gone')
            with pytest.raises(LoanNotFound):
                LoanService.delete_loan(999)
        assert len(loan_locks) == before

    def test_deleting_a_loan_forgets_its_lock(self, loan):
        _pay(loan, '400')
        assert loan.id in loan_locks._locks
        LoanService.delete_loan(loan.id)
        assert loan.id not in loan_locks._locks
