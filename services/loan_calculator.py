"""
Loan Calculator
===============
Flat-interest daily schedules and payment reconciliation for daily-collection loans.

Nothing in this module touches the database.  It works on plain values and on any
object that exposes the attributes it reads, so it accepts both the dataclasses
defined here and the SQLAlchemy models in ``models``.

Schedule generation
-------------------
  principal is first rounded to cents and rate to four decimal places, the
  precision a stored loan keeps, and must still be positive afterwards.

  total_interest = round2(principal × rate / 100)
  total_amount   = round2(principal + total_interest)
  daily_amount   = round2(total_amount / term_days)

  Day d (1-based) is due on start_date + (d − 1) days, plans ``daily_amount`` and
  has a cumulative ``due_amount`` of round2(daily_amount × d).  Rounding happens at
  every step, so the sum of planned amounts may differ from total_amount by up to
  one cent per day; the per-day remaining balance absorbs the difference.

Reconciliation
--------------
  1. Payments are ordered by (paid_at, id).
  2. Running balance: each payment gets previous_pending / new_pending, floored at 0.
  3. Allocation: payment amounts are drawn as one FIFO queue of cash against the
     planned amount of each schedule day, in day order.  With no payments at all
     the schedule goes back to its freshly generated balances.
  4. Status: no payments → active; balance ≤ 0 → closed;
     balance / total > warning ratio → warning; otherwise active.

Primary entry points
--------------------
  generate_schedule() — loan terms → LoanSchedule
  reconcile()         — loan + payment history → Reconciliation
  summarize_arrears() — how far the collected cash trails the calendar
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from exceptions import InvalidLoanTerms, InvalidPayment


CENT = Decimal('0.01')
RATE_UNIT = Decimal('0.0001')  # Interest rate column scale
ZERO = Decimal('0.00')
DEFAULT_WARNING_RATIO = Decimal('0.20')


class LoanStatus:
    ACTIVE = 'active'
    WARNING = 'warning'
    CLOSED = 'closed'

    ALL = (ACTIVE, WARNING, CLOSED)


def to_decimal(value):
    """Convert *value* to Decimal without passing through binary float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f'{value!r} is not a number')
    return Decimal(str(value))


def round2(value):
    """Round to whole cents, halves away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_start_date(value=None):
    """Strip time-of-day so schedule dates land on whole calendar days."""
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


@dataclass
class ScheduleDay:
    """One daily installment obligation."""

    day: int
    date: date
    planned_amount: Decimal
    due_amount: Decimal
    paid_amount: Decimal = ZERO
    remaining_balance: Decimal = ZERO


@dataclass
class LoanSchedule:
    """Derived loan figures plus the materialised day-by-day schedule."""

    principal: Decimal
    interest_rate: Decimal
    term_days: int
    start_date: date
    end_date: date
    total_interest: Decimal
    total_amount: Decimal
    daily_amount: Decimal
    schedule: list = field(default_factory=list)


@dataclass(frozen=True)
class PaymentEntry:
    """Raw payment input: the only payment fields reconciliation reads."""

    id: object
    amount_paid: Decimal
    paid_at: datetime


@dataclass(frozen=True)
class PaymentBalance:
    """Derived running balance for one payment."""

    payment_id: object
    previous_pending: Decimal
    new_pending: Decimal
    scheduled_amount: Decimal


@dataclass
class Reconciliation:
    """Complete derived state of a loan after replaying its payments."""

    schedule: list
    payments: list
    status: str
    remaining_balance: Decimal
    total_paid: Decimal
    overpaid_amount: Decimal


def _validated_terms(principal, interest_rate, term_days):
    try:
        principal = to_decimal(principal)
        interest_rate = to_decimal(interest_rate)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidLoanTerms('Principal and interest rate must be numbers')

    if not principal.is_finite() or not interest_rate.is_finite():
        raise InvalidLoanTerms('Principal and interest rate must be finite numbers')

    # Same scale as the loan columns: Numeric(12, 2) and Numeric(7, 4)
    principal = round2(principal)
    interest_rate = interest_rate.quantize(RATE_UNIT, rounding=ROUND_HALF_UP)

    if principal <= 0:
        raise InvalidLoanTerms('Principal must be at least 0.01')
    if interest_rate <= 0:
        raise InvalidLoanTerms('Interest rate must be at least 0.0001 percent')
    if isinstance(term_days, bool) or not isinstance(term_days, int):
        raise InvalidLoanTerms('Term must be a whole number of days')
    if term_days < 1:
        raise InvalidLoanTerms('Term must be at least one day')

    return principal, interest_rate, term_days


def generate_schedule(principal, interest_rate, term_days, start_date=None):
    """
    Build the fixed daily repayment schedule for a flat-interest loan.

    Args:
        principal:     Amount lent (> 0).
        interest_rate: Flat interest for the whole term, as a percentage (> 0).
        term_days:     Number of daily installments (>= 1).
        start_date:    Date or datetime of the first installment (defaults to today);
                       any time-of-day is discarded.

    Returns:
        LoanSchedule with one ScheduleDay per day, nothing paid yet.

    Raises:
        InvalidLoanTerms: if any input is out of range.
    """
    principal, interest_rate, term_days = _validated_terms(principal, interest_rate, term_days)
    beginning = normalize_start_date(start_date)

    total_interest = round2(principal * interest_rate / Decimal('100'))
    total_amount = round2(principal + total_interest)
    daily_amount = round2(total_amount / Decimal(term_days))

    schedule = []
    for day in range(1, term_days + 1):
        remaining = round2(total_amount - daily_amount * day)
        schedule.append(ScheduleDay(
            day=day,
            date=beginning + timedelta(days=day - 1),
            planned_amount=daily_amount,
            due_amount=round2(daily_amount * day),
            paid_amount=ZERO,
            remaining_balance=max(ZERO, remaining),
        ))

    return LoanSchedule(
        principal=principal,
        interest_rate=interest_rate,
        term_days=term_days,
        start_date=beginning,
        end_date=beginning + timedelta(days=term_days - 1),
        total_interest=total_interest,
        total_amount=total_amount,
        daily_amount=daily_amount,
        schedule=schedule,
    )


def _ordering_key(payment):
    # ids break ties between payments stamped with the same paid_at
    return (payment.paid_at, payment.id is None, payment.id)


def derive_status(remaining_balance, total_amount, has_payments, warning_ratio=DEFAULT_WARNING_RATIO):
    """Map an outstanding balance to a loan status."""
    if not has_payments:
        return LoanStatus.ACTIVE
    if remaining_balance <= 0:
        return LoanStatus.CLOSED
    if remaining_balance / total_amount > to_decimal(warning_ratio):
        return LoanStatus.WARNING
    return LoanStatus.ACTIVE


def reconcile(loan, payments, warning_ratio=DEFAULT_WARNING_RATIO):
    """
    Replay a loan's complete payment history and rebuild every derived field.

    The result depends only on the loan's total_amount, daily_amount and schedule
    (day, date, planned_amount, due_amount) and on each payment's id, amount_paid
    and paid_at, so repeated calls with the same inputs return identical output.

    Args:
        loan:          Object with ``total_amount``, ``daily_amount`` and ``schedule``
                       (LoanSchedule or models.Loan).
        payments:      Every payment of the loan, in any order.  Each needs ``id``,
                       ``amount_paid`` and ``paid_at``.
        warning_ratio: Outstanding / total above which the loan is in warning.

    Returns:
        Reconciliation: new ScheduleDay list (day order), PaymentBalance list
        (paid_at order), status, final balance, total paid and any overpayment.

    Raises:
        InvalidPayment: if a payment amount is not positive.
    """
    total_amount = round2(loan.total_amount)
    daily_amount = round2(loan.daily_amount)
    ordered = sorted(payments, key=_ordering_key)

    amounts = []
    for payment in ordered:
        amount = round2(payment.amount_paid)
        if amount <= 0:
            raise InvalidPayment(f'Payment {payment.id} has a non-positive amount ({amount})')
        amounts.append(amount)

    # Running balance per payment
    remaining = total_amount
    overpaid = ZERO
    balances = []
    for payment, amount in zip(ordered, amounts):
        previous = remaining
        remaining = round2(remaining - amount)
        if remaining < 0:
            overpaid += -remaining
            remaining = ZERO
        balances.append(PaymentBalance(
            payment_id=payment.id,
            previous_pending=previous,
            new_pending=remaining,
            scheduled_amount=daily_amount,
        ))

    # FIFO allocation of cash across the schedule
    queue_index = 0
    queue_left = amounts[0] if amounts else ZERO
    cumulative_paid = ZERO
    schedule = []
    for entry in sorted(loan.schedule, key=lambda e: e.day):
        due = round2(entry.planned_amount)
        paid_for_day = ZERO

        while due > 0 and queue_index < len(amounts):
            applied = min(due, queue_left)
            paid_for_day += applied
            due -= applied
            queue_left -= applied

            if queue_left <= 0:
                queue_index += 1
                queue_left = amounts[queue_index] if queue_index < len(amounts) else ZERO

        cumulative_paid += paid_for_day
        if amounts:
            remaining_balance = max(ZERO, round2(total_amount - cumulative_paid))
        else:
            # Nothing collected: the freshly generated planned balances
            remaining_balance = max(ZERO, round2(total_amount - to_decimal(entry.due_amount)))
        schedule.append(ScheduleDay(
            day=entry.day,
            date=entry.date,
            planned_amount=round2(entry.planned_amount),
            due_amount=round2(entry.due_amount),
            paid_amount=round2(paid_for_day),
            remaining_balance=remaining_balance,
        ))

    return Reconciliation(
        schedule=schedule,
        payments=balances,
        status=derive_status(remaining, total_amount, bool(ordered), warning_ratio),
        remaining_balance=remaining,
        total_paid=round2(sum(amounts, ZERO)),
        overpaid_amount=round2(overpaid),
    )


def summarize_arrears(schedule, as_of=None):
    """
    Compare collected cash with what the calendar says should have been collected.

    Informational only; loan status is driven by the outstanding ratio.

    Returns:
        dict with due_to_date, paid_to_date, arrears_amount, days_due, days_in_arrears.
    """
    as_of = normalize_start_date(as_of)
    due_entries = [e for e in schedule if e.date <= as_of]

    due_to_date = round2(sum((to_decimal(e.planned_amount) for e in due_entries), ZERO))
    paid_to_date = round2(sum((to_decimal(e.paid_amount) for e in due_entries), ZERO))
    days_in_arrears = sum(1 for e in due_entries if to_decimal(e.paid_amount) < to_decimal(e.planned_amount))

    return {
        'due_to_date': due_to_date,
        'paid_to_date': paid_to_date,
        'arrears_amount': max(ZERO, due_to_date - paid_to_date),
        'days_due': len(due_entries),
        'days_in_arrears': days_in_arrears,
    }
