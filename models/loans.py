from extensions import db
from models.loan_payments import LoanPayment
from utils.db_helpers import isoformat, money, utcnow


class Loan(db.Model):
    """Daily-collection loan with flat interest and a materialised schedule."""
    __tablename__ = 'loans'

    id = db.Column(db.Integer, primary_key=True)
    loan_number = db.Column(db.Integer, unique=True, nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)

    # Terms
    principal = db.Column(db.Numeric(12, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(7, 4), nullable=False)  # Flat % for the whole term
    term_days = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)

    # Derived from the terms by the schedule generator
    end_date = db.Column(db.Date, nullable=False)
    total_interest = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    daily_amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Derived by reconciliation: active, warning, closed
    status = db.Column(db.String(20), nullable=False, default='active', index=True)

    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    customer = db.relationship('Customer', back_populates='loans')
    schedule = db.relationship('LoanScheduleEntry', back_populates='loan',
                               order_by='LoanScheduleEntry.day',
                               cascade='all, delete-orphan')
    payments = db.relationship('LoanPayment', back_populates='loan',
                               order_by=lambda: [LoanPayment.paid_at, LoanPayment.id],
                               cascade='all, delete-orphan')

    def apply_schedule(self, result):
        """Copy a generated LoanSchedule onto this loan.

        Existing rows are reused day-for-day so regeneration never inserts a
        second row for the same (loan, day); surplus days are deleted.  Paid
        amounts start from zero again.
        """
        self.principal = result.principal
        self.interest_rate = result.interest_rate
        self.term_days = result.term_days
        self.start_date = result.start_date
        self.end_date = result.end_date
        self.total_interest = result.total_interest
        self.total_amount = result.total_amount
        self.daily_amount = result.daily_amount

        existing = {entry.day: entry for entry in self.schedule}
        entries = []
        for day in result.schedule:
            entry = existing.pop(day.day, None) or LoanScheduleEntry(day=day.day)
            entry.date = day.date
            entry.planned_amount = day.planned_amount
            entry.due_amount = day.due_amount
            entry.paid_amount = day.paid_amount
            entry.remaining_balance = day.remaining_balance
            entries.append(entry)
        self.schedule = entries

    def to_dict(self, include_schedule=False):
        data = {
            'id': self.id,
            'loan_number': self.loan_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'principal': money(self.principal),
            'interest_rate': f'{self.interest_rate:.2f}' if self.interest_rate is not None else None,
            'term_days': self.term_days,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
            'total_interest': money(self.total_interest),
            'total_amount': money(self.total_amount),
            'daily_amount': money(self.daily_amount),
            'status': self.status,
            'notes': self.notes,
        }
        if include_schedule:
            data['schedule'] = [entry.to_dict() for entry in self.schedule]
        return data

    def __repr__(self):
        return f'<Loan #{self.loan_number}: {self.total_amount} over {self.term_days} days ({self.status})>'


class LoanScheduleEntry(db.Model):
    """One day of a loan's repayment schedule."""
    __tablename__ = 'loan_schedule_entries'
    __table_args__ = (
        db.UniqueConstraint('loan_id', 'day', name='uq_loan_schedule_day'),
    )

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey('loans.id'), nullable=False, index=True)

    day = db.Column(db.Integer, nullable=False)  # 1-based
    date = db.Column(db.Date, nullable=False)
    planned_amount = db.Column(db.Numeric(12, 2), nullable=False)
    due_amount = db.Column(db.Numeric(12, 2), nullable=False)  # Cumulative due by this day

    # Rewritten by every reconciliation
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    remaining_balance = db.Column(db.Numeric(12, 2), nullable=False)

    loan = db.relationship('Loan', back_populates='schedule')

    def to_dict(self):
        return {
            'day': self.day,
            'date': isoformat(self.date),
            'planned_amount': money(self.planned_amount),
            'due_amount': money(self.due_amount),
            'paid_amount': money(self.paid_amount),
            'remaining_balance': money(self.remaining_balance),
        }

    def __repr__(self):
        return f'<LoanScheduleEntry loan={self.loan_id} day={self.day}: {self.paid_amount}/{self.planned_amount}>'
