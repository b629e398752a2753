from flask import current_app, jsonify
from . import dashboard_bp
from services.dashboard_service import DashboardService
from utils.db_helpers import money


@dashboard_bp.route('/overview', methods=['GET'])
def overview():
    """Portfolio totals and status breakdowns"""
    data = DashboardService.get_overview()
    data['summary'] = {key: money(value) for key, value in data['summary'].items()}
    data['currency'] = current_app.config.get('LEDGER_CURRENCY')
    return jsonify(data)
