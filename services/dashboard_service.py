"""
Dashboard Service
=================
Portfolio-wide totals for the overview page.
"""
from sqlalchemy import func

from extensions import db
from models.customers import Customer
from models.loans import Loan
from models.loan_payments import LoanPayment
from services.loan_calculator import ZERO, round2


# Reported name differs from the stored status
STATUS_LABELS = {'closed': 'completed'}


class DashboardService:

    @staticmethod
    def get_overview():
        """
        Totals across all loans and customers.

        Returns:
            dict with ``summary`` (capital with and without interest, profit,
            total paid, outstanding), ``loans`` and ``customers`` counts with a
            per-status breakdown.
        """
        loan_rows = db.session.query(
            Loan.status,
            func.count(Loan.id),
            func.coalesce(func.sum(Loan.principal), 0),
            func.coalesce(func.sum(Loan.total_amount), 0),
            func.coalesce(func.sum(Loan.total_interest), 0),
        ).group_by(Loan.status).all()

        total_paid = db.session.query(func.coalesce(func.sum(LoanPayment.amount_paid), 0)).scalar()

        customer_rows = db.session.query(Customer.status, func.count(Customer.id))\
            .group_by(Customer.status).all()

        total_principal = round2(sum((round2(row[2]) for row in loan_rows), ZERO))
        total_amount = round2(sum((round2(row[3]) for row in loan_rows), ZERO))
        total_interest = round2(sum((round2(row[4]) for row in loan_rows), ZERO))
        total_paid = round2(total_paid or 0)

        return {
            'summary': {
                'total_capital_with_interest': total_amount,
                'total_capital_without_interest': total_principal,
                'total_profit': total_interest,
                'total_paid': total_paid,
                'outstanding': max(ZERO, total_amount - total_paid),
            },
            'loans': {
                'total': sum(row[1] for row in loan_rows),
                'breakdown': {STATUS_LABELS.get(row[0], row[0]): row[1] for row in loan_rows},
            },
            'customers': {
                'total': sum(row[1] for row in customer_rows),
                'breakdown': {STATUS_LABELS.get(row[0], row[0]): row[1] for row in customer_rows},
            },
        }
