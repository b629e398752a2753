"""
Loan Forms
Validate JSON bodies for loan origination and amendment
"""
from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField
from wtforms.validators import AnyOf, InputRequired, Optional

from services.loan_calculator import LoanStatus
from utils.forms import ExactDecimalField, IsoDate, WholeNumber


class LoanForm(FlaskForm):
    """New loan. Positivity of the terms is enforced by the schedule generator."""
    customer_id = IntegerField('Customer', validators=[InputRequired(message='Customer is required')])
    principal = ExactDecimalField('Principal', validators=[InputRequired(message='Principal is required')])
    interest_rate = ExactDecimalField('Interest Rate (%)', validators=[
        InputRequired(message='Interest rate is required')
    ])
    term_days = IntegerField('Term (days)', validators=[
        InputRequired(message='Term is required'),
        WholeNumber(message='Term must be a whole number of days')
    ])
    start_date = StringField('Start Date', validators=[Optional(), IsoDate()])
    notes = StringField('Notes', validators=[Optional()])


class LoanUpdateForm(FlaskForm):
    """Loan amendment; every field optional"""
    principal = ExactDecimalField('Principal', validators=[Optional()])
    interest_rate = ExactDecimalField('Interest Rate (%)', validators=[Optional()])
    term_days = IntegerField('Term (days)', validators=[
        Optional(),
        WholeNumber(message='Term must be a whole number of days')
    ])
    start_date = StringField('Start Date', validators=[Optional(), IsoDate()])
    notes = StringField('Notes', validators=[Optional()])
    status = StringField('Status', validators=[Optional(), AnyOf(LoanStatus.ALL)])
