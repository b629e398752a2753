from extensions import db
from utils.db_helpers import isoformat, utcnow


class Customer(db.Model):
    """Borrower record. Loans and payments hang off a customer."""
    __tablename__ = 'customers'

    STATUSES = ('active', 'inactive', 'warning')

    id = db.Column(db.Integer, primary_key=True)
    customer_number = db.Column(db.Integer, unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(30))
    nic = db.Column(db.String(20), index=True)  # National identity card number
    email = db.Column(db.String(120))

    # Utility account numbers double as proof of address
    electricity_account = db.Column(db.String(50))
    water_account = db.Column(db.String(50))

    # Local village officer who vouches for the customer
    village_officer_name = db.Column(db.String(200))
    village_officer_phone = db.Column(db.String(30))

    special_note = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='active')

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    loans = db.relationship('Loan', back_populates='customer', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'customer_number': self.customer_number,
            'name': self.name,
            'phone': self.phone,
            'nic': self.nic,
            'email': self.email,
            'electricity_account': self.electricity_account,
            'water_account': self.water_account,
            'village_officer_name': self.village_officer_name,
            'village_officer_phone': self.village_officer_phone,
            'special_note': self.special_note,
            'status': self.status,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Customer #{self.customer_number} {self.name}>'
