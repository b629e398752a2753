"""
Payment Forms
Validate JSON bodies for recording and amending collections
"""
from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField
from wtforms.validators import InputRequired, Length, Optional

from utils.forms import ExactDecimalField, IsoDate


class PaymentForm(FlaskForm):
    """Record a collection. Positivity is enforced by the loan service."""
    loan_id = IntegerField('Loan', validators=[InputRequired(message='Loan is required')])
    amount_paid = ExactDecimalField('Amount Paid', validators=[InputRequired(message='Amount is required')])
    paid_at = StringField('Paid At', validators=[Optional(), IsoDate()])
    note = StringField('Note', validators=[Optional()])
    collected_by = StringField('Collected By', validators=[Optional(), Length(max=100)])


class PaymentUpdateForm(FlaskForm):
    """Amend a collection; every field optional"""
    amount_paid = ExactDecimalField('Amount Paid', validators=[Optional()])
    paid_at = StringField('Paid At', validators=[Optional(), IsoDate()])
    note = StringField('Note', validators=[Optional()])
