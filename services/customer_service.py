"""
Customer Service
================
Customer numbering, lookup and search.  Customers are plain records; the
ledger only needs them to exist before a loan is created.
"""
from flask import current_app

from exceptions import CustomerNotFound
from extensions import db
from models.customers import Customer
from utils.db_helpers import get_or_raise, next_number


EDITABLE_FIELDS = (
    'name', 'phone', 'nic', 'email',
    'electricity_account', 'water_account',
    'village_officer_name', 'village_officer_phone',
    'special_note', 'status',
)


class CustomerService:

    @staticmethod
    def get_customer(customer_id):
        return get_or_raise(Customer, customer_id, CustomerNotFound)

    @staticmethod
    def search(query=None, status=None):
        """Case-insensitive match on name, phone, NIC or email, by customer number."""
        customers = Customer.query
        if query:
            pattern = f'%{query}%'
            customers = customers.filter(db.or_(
                Customer.name.ilike(pattern),
                Customer.phone.ilike(pattern),
                Customer.nic.ilike(pattern),
                Customer.email.ilike(pattern),
            ))
        if status:
            customers = customers.filter_by(status=status)
        return customers.order_by(Customer.customer_number).all()

    @staticmethod
    def create_customer(**fields):
        """Create a customer with the next sequential customer number."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise TypeError(f'Unknown customer fields: {", ".join(sorted(unknown))}')

        try:
            customer = Customer(customer_number=next_number(Customer.customer_number), **fields)
            db.session.add(customer)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f'Customer #{customer.customer_number} created')
        return customer

    @staticmethod
    def update_customer(customer_id, **fields):
        customer = CustomerService.get_customer(customer_id)
        try:
            for name, value in fields.items():
                if name not in EDITABLE_FIELDS:
                    raise TypeError(f'Unknown customer field: {name}')
                setattr(customer, name, value)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return customer
