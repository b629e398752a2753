import os
import logging
import click
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from config import config
from extensions import db, migrate, limiter
from exceptions import (
    EntityNotFound,
    InvalidLoanTerms,
    InvalidPayment,
    LedgerError,
    ReconciliationFailure,
)


def configure_logging(app):
    """Configure application logging"""
    if not app.debug and not app.testing:
        log_dir = app.config.get('LOG_DIR', 'logs')
        if not os.path.exists(log_dir):
            os.mkdir(log_dir)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'daily_ledger.log'),
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s '
            '[in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Daily Ledger startup')
    else:
        # Development logging to console
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('Daily Ledger startup (DEBUG mode)')


def create_app(config_name=None):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config.setdefault('RATELIMIT_DEFAULT', app.config.get('API_RATELIMIT'))
    config[config_name].init_app(app)

    # Configure logging
    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Add security headers
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    # Import models to ensure they're registered with SQLAlchemy
    with app.app_context():
        import models  # noqa: F401

    # Register blueprints
    from blueprints.customers import customers_bp
    from blueprints.loans import loans_bp
    from blueprints.payments import payments_bp
    from blueprints.dashboard import dashboard_bp

    app.register_blueprint(customers_bp, url_prefix='/api/customers')
    app.register_blueprint(loans_bp, url_prefix='/api/loans')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

    # Local SQLite databases are created on first run; anything else goes through migrations
    database_uri = app.config.get('SQLALCHEMY_DATABASE_URI') or ''
    if database_uri.startswith('sqlite'):
        instance_dir = os.path.join(os.path.abspath(os.path.dirname(__file__)), 'instance')
        if ':memory:' not in database_uri:
            os.makedirs(instance_dir, exist_ok=True)
        with app.app_context():
            db.create_all()

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Map ledger failures and HTTP errors to JSON responses"""

    @app.errorhandler(EntityNotFound)
    def not_found(error):
        return jsonify({'message': str(error)}), 404

    @app.errorhandler(InvalidLoanTerms)
    @app.errorhandler(InvalidPayment)
    def invalid_input(error):
        return jsonify({'message': str(error)}), 400

    @app.errorhandler(ReconciliationFailure)
    def reconciliation_failed(error):
        # Already logged with traceback by the service
        return jsonify({'message': 'Unable to reconcile loan', 'loan_id': error.loan_id}), 500

    @app.errorhandler(LedgerError)
    def ledger_error(error):
        app.logger.error(f'Unhandled ledger error: {error}')
        return jsonify({'message': str(error)}), 400

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'message': error.description}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'Internal Server Error: {error}')
        return jsonify({'message': 'Internal server error'}), 500


def register_commands(app):
    """Register Flask CLI commands."""

    @app.cli.group()
    def ledger():
        """Loan ledger maintenance."""
        pass

    @ledger.command('recalculate')
    @click.option('--loan-id', type=int, default=None, help='Only this loan (default: every loan).')
    def recalculate(loan_id):
        """Rebuild derived balances, allocations and status from raw payments."""
        from services.loan_service import LoanService
        if loan_id is None:
            count = LoanService.recalculate_all()
            click.echo(f'SUCCESS: {count} loan(s) recalculated.')
            return
        result = LoanService.recalculate(loan_id)
        click.echo(f'SUCCESS: loan {loan_id} recalculated '
                   f'(remaining {result.remaining_balance:.2f}, status {result.status}).')

    @ledger.command('verify')
    def verify():
        """Check stored derived state against a fresh reconciliation without writing."""
        from models.loans import Loan
        from models.loan_payments import LoanPayment
        from services.loan_calculator import reconcile

        ratio = app.config['LEDGER_WARNING_RATIO']
        mismatched = []
        for loan in Loan.query.order_by(Loan.loan_number).all():
            payments = LoanPayment.query.filter_by(loan_id=loan.id).all()
            result = reconcile(loan, payments, ratio)
            stored = {p.id: (p.previous_pending, p.new_pending) for p in payments}
            expected = {b.payment_id: (b.previous_pending, b.new_pending) for b in result.payments}
            schedule_ok = all(
                entry.paid_amount == day.paid_amount and entry.remaining_balance == day.remaining_balance
                for entry, day in zip(loan.schedule, result.schedule)
            )
            if loan.status != result.status or stored != expected or not schedule_ok:
                mismatched.append(loan)

        if not mismatched:
            click.echo('All loans consistent.')
            return
        click.echo(f'{"Loan":<8} {"Stored":<10} {"Expected":<10}')
        click.echo('-' * 30)
        for loan in mismatched:
            payments = LoanPayment.query.filter_by(loan_id=loan.id).all()
            expected_status = reconcile(loan, payments, ratio).status
            click.echo(f'{loan.loan_number:<8} {loan.status:<10} {expected_status:<10}')
        click.echo(f'{len(mismatched)} loan(s) need `flask ledger recalculate`.', err=True)


if __name__ == '__main__':
    app = create_app()
    app.run(host='127.0.0.1', port=5000, debug=True)
