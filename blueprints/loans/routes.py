from flask import jsonify, request
from . import loans_bp
from .forms import LoanForm, LoanUpdateForm
from services.loan_service import LoanService
from utils.db_helpers import money
from utils.forms import bind_json, invalid_input, submitted


def _statistics_to_json(stats):
    return {key: money(value) if not isinstance(value, int) else value
            for key, value in stats.items()}


@loans_bp.route('', methods=['GET'])
def index():
    """List loans, newest first"""
    loans = LoanService.list_loans(
        status=request.args.get('status'),
        customer_id=request.args.get('customer_id', type=int),
    )
    return jsonify({'loans': [loan.to_dict() for loan in loans]})


@loans_bp.route('', methods=['POST'])
def create():
    """Originate a loan and generate its daily schedule"""
    form = bind_json(LoanForm)
    if not form.validate():
        return invalid_input(form)

    loan = LoanService.create_loan(
        customer_id=form.customer_id.data,
        principal=form.principal.data,
        interest_rate=form.interest_rate.data,
        term_days=form.term_days.data,
        start_date=form.start_date.data or None,
        notes=form.notes.data or None,
    )
    return jsonify({
        'message': 'Loan created',
        'loan': {'id': loan.id, 'loan_number': loan.loan_number},
    }), 201


@loans_bp.route('/<int:id>', methods=['GET'])
def detail(id):
    """Loan with schedule, payments (newest first) and statistics"""
    loan = LoanService.get_loan(id)
    data = loan.to_dict(include_schedule=True)
    data['payments'] = [payment.to_dict() for payment in LoanService.list_payments(id)]
    data['statistics'] = _statistics_to_json(LoanService.get_payment_statistics(id))
    return jsonify({'loan': data})


@loans_bp.route('/<int:id>', methods=['PUT'])
def update(id):
    """Amend loan terms, notes or status"""
    form = bind_json(LoanUpdateForm)
    if not form.validate():
        return invalid_input(form)

    changes = submitted(form, 'principal', 'interest_rate', 'term_days', 'start_date', 'notes', 'status')
    # Blank strings mean "unchanged" except for notes, which may be cleared
    changes = {key: value for key, value in changes.items() if value != '' or key == 'notes'}
    loan, warnings = LoanService.update_loan(id, **changes)
    return jsonify({'message': 'Loan updated', 'loan': loan.to_dict(), 'warnings': warnings})


@loans_bp.route('/<int:id>', methods=['DELETE'])
def delete(id):
    """Delete a loan with its schedule and payments"""
    LoanService.delete_loan(id)
    return jsonify({'message': 'Loan deleted'})


@loans_bp.route('/<int:id>/recalculate', methods=['POST'])
def recalculate(id):
    """Re-run reconciliation for one loan"""
    result = LoanService.recalculate(id)
    return jsonify({
        'message': 'Loan recalculated',
        'status': result.status,
        'remaining_balance': money(result.remaining_balance),
        'total_paid': money(result.total_paid),
        'overpaid_amount': money(result.overpaid_amount),
    })
