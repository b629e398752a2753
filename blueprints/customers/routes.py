from flask import jsonify, request
from . import customers_bp
from .forms import CustomerForm, CustomerUpdateForm
from models.loans import Loan
from services.customer_service import CustomerService, EDITABLE_FIELDS
from utils.forms import bind_json, invalid_input, submitted


@customers_bp.route('', methods=['GET'])
def index():
    """Search customers by name, phone, NIC or email"""
    customers = CustomerService.search(
        query=request.args.get('q'),
        status=request.args.get('status'),
    )
    return jsonify({'customers': [customer.to_dict() for customer in customers]})


@customers_bp.route('', methods=['POST'])
def create():
    """Create a customer"""
    form = bind_json(CustomerForm)
    if not form.validate():
        return invalid_input(form)

    customer = CustomerService.create_customer(**submitted(form, *EDITABLE_FIELDS))
    return jsonify({'message': 'Customer created', 'customer': customer.to_dict()}), 201


@customers_bp.route('/<int:id>', methods=['GET'])
def detail(id):
    """Customer with their loans"""
    customer = CustomerService.get_customer(id)
    data = customer.to_dict()
    data['loans'] = [loan.to_dict() for loan in customer.loans.order_by(Loan.loan_number)]
    return jsonify({'customer': data})


@customers_bp.route('/<int:id>', methods=['PUT'])
def update(id):
    """Update customer details"""
    form = bind_json(CustomerUpdateForm)
    if not form.validate():
        return invalid_input(form)

    customer = CustomerService.update_customer(id, **submitted(form, *EDITABLE_FIELDS))
    return jsonify({'message': 'Customer updated', 'customer': customer.to_dict()})
