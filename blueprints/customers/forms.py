"""
Customer Forms
Validate JSON bodies for customer create / update
"""
from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import AnyOf, DataRequired, Email, Length, Optional

from models.customers import Customer


class CustomerForm(FlaskForm):
    """New customer"""
    name = StringField('Name', validators=[
        DataRequired(message='Name is required'),
        Length(min=2, max=200, message='Name must be between 2 and 200 characters')
    ])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    nic = StringField('NIC', validators=[Optional(), Length(max=20)])
    email = StringField('Email', validators=[Optional(), Email(message='Invalid email address')])
    electricity_account = StringField('Electricity Account', validators=[Optional(), Length(max=50)])
    water_account = StringField('Water Account', validators=[Optional(), Length(max=50)])
    village_officer_name = StringField('Village Officer', validators=[Optional(), Length(max=200)])
    village_officer_phone = StringField('Village Officer Phone', validators=[Optional(), Length(max=30)])
    special_note = StringField('Special Note', validators=[Optional()])
    status = StringField('Status', validators=[Optional(), AnyOf(Customer.STATUSES)])


class CustomerUpdateForm(CustomerForm):
    """Partial customer update; every field optional"""
    name = StringField('Name', validators=[
        Optional(),
        Length(min=2, max=200, message='Name must be between 2 and 200 characters')
    ])
