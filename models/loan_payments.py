from extensions import db
from utils.db_helpers import isoformat, money, utcnow


class LoanPayment(db.Model):
    """Cash collected against a loan.

    ``amount_paid``, ``paid_at`` and ``note`` are operator input.  The pending
    balances and ``scheduled_amount`` are rewritten by every reconciliation of
    the loan, so they always reflect the loan's current terms.
    """
    __tablename__ = 'loan_payments'

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey('loans.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)

    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    paid_at = db.Column(db.DateTime, nullable=False, index=True)  # Operator-settable, may be backdated
    note = db.Column(db.Text)
    collected_by = db.Column(db.String(100))

    # Derived
    scheduled_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    previous_pending = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    new_pending = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    loan = db.relationship('Loan', back_populates='payments')
    customer = db.relationship('Customer')

    def to_dict(self):
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'customer_id': self.customer_id,
            'amount_paid': money(self.amount_paid),
            'scheduled_amount': money(self.scheduled_amount),
            'previous_pending': money(self.previous_pending),
            'new_pending': money(self.new_pending),
            'paid_at': isoformat(self.paid_at),
            'note': self.note,
            'collected_by': self.collected_by,
        }

    def __repr__(self):
        return f'<LoanPayment loan={self.loan_id} {self.amount_paid} at {self.paid_at}>'
