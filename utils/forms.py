"""
Helpers for validating JSON request bodies with Flask-WTF forms.

Usage
-----
::

    form = bind_json(LoanForm)
    if not form.validate():
        return invalid_input(form)
"""
from datetime import datetime

from flask import jsonify, request
from werkzeug.datastructures import ImmutableMultiDict
from wtforms import DecimalField
from wtforms.validators import ValidationError


def bind_json(form_class):
    """Instantiate *form_class* from the JSON body.

    Keys sent as ``null`` are treated as absent so Optional() fields stay empty.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    data = ImmutableMultiDict({key: value for key, value in payload.items() if value is not None})
    return form_class(formdata=data, meta={'csrf': False})


def invalid_input(form):
    return jsonify({'message': 'Invalid input', 'errors': form.errors}), 400


def submitted(form, *names):
    """Return {name: data} for the fields present in the request body."""
    return {name: getattr(form, name).data for name in names if getattr(form, name).raw_data}


class IsoDate:
    """Accept an ISO-8601 date or datetime string."""

    def __init__(self, message=None):
        self.message = message or 'Not a valid ISO-8601 date.'

    def __call__(self, form, field):
        if not field.data:
            return
        try:
            datetime.fromisoformat(str(field.data).replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(self.message)


class WholeNumber:
    """Reject fractional JSON numbers that IntegerField would truncate."""

    def __init__(self, message=None):
        self.message = message or 'Must be a whole number.'

    def __call__(self, form, field):
        raw = field.raw_data[0] if field.raw_data else None
        if isinstance(raw, float) and not raw.is_integer():
            raise ValidationError(self.message)


class ExactDecimalField(DecimalField):
    """DecimalField that reads JSON numbers through their text form.

    ``Decimal(0.1)`` carries the binary float error; ``Decimal('0.1')`` does not.
    """

    def process_formdata(self, valuelist):
        if valuelist and not isinstance(valuelist[0], str):
            valuelist = [str(valuelist[0])]
        super().process_formdata(valuelist)
