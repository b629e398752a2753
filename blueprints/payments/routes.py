from flask import jsonify, request
from . import payments_bp
from .forms import PaymentForm, PaymentUpdateForm
from services.loan_service import LoanService
from utils.forms import bind_json, invalid_input


@payments_bp.route('', methods=['GET'])
def index():
    """Payments of one loan, newest first"""
    loan_id = request.args.get('loan_id', type=int)
    if not loan_id:
        return jsonify({'message': 'Loan id is required'}), 400

    payments = LoanService.list_payments(loan_id)
    return jsonify({'payments': [payment.to_dict() for payment in payments]})


@payments_bp.route('', methods=['POST'])
def create():
    """Record a collection and reconcile the loan"""
    form = bind_json(PaymentForm)
    if not form.validate():
        return invalid_input(form)

    payment = LoanService.record_payment(
        loan_id=form.loan_id.data,
        amount_paid=form.amount_paid.data,
        paid_at=form.paid_at.data or None,
        note=form.note.data or None,
        collected_by=form.collected_by.data or None,
    )
    data = payment.to_dict()
    data['day_number'] = LoanService.get_payment_day_number(payment)
    data['loan_status'] = payment.loan.status
    return jsonify({'message': 'Payment recorded', 'payment': data}), 201


@payments_bp.route('/<int:id>', methods=['GET'])
def detail(id):
    """One payment with its position in the loan's collection order"""
    payment = LoanService.get_payment(id)
    data = payment.to_dict()
    data['day_number'] = LoanService.get_payment_day_number(payment)
    return jsonify({'payment': data})


@payments_bp.route('/<int:id>', methods=['PUT'])
def update(id):
    """Amend amount, note or paid_at and reconcile the loan"""
    form = bind_json(PaymentUpdateForm)
    if not form.validate():
        return invalid_input(form)

    payment = LoanService.update_payment(
        id,
        amount_paid=form.amount_paid.data,
        note=form.note.data if form.note.raw_data else None,
        paid_at=form.paid_at.data or None,
    )
    return jsonify({'message': 'Payment updated', 'payment': payment.to_dict()})


@payments_bp.route('/<int:id>', methods=['DELETE'])
def delete(id):
    """Delete a payment and reconcile the loan"""
    LoanService.delete_payment(id)
    return jsonify({'message': 'Payment deleted'})
