# ==============================================================================
# app/main/forms.py
# ------------------------------------------------------------------------------
# Defines input forms using Flask-WTF for validating JSON and form payloads.
# The API is consumed by scripts, so CSRF is switched off per form.
# ==============================================================================

from flask_wtf import FlaskForm
from wtforms import FloatField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, InputRequired, NumberRange, Optional
from app.engine.schema import SHIFT_TYPES


class ApiForm(FlaskForm):
    class Meta:
        csrf = False


class AppSettingForm(ApiForm):
    """Form for editing a single engine setting."""
    value = TextAreaField('Value', validators=[DataRequired(message="A value is required.")])


class PlanRowForm(ApiForm):
    """Manual edit of a plan row's targets. Omitted fields keep their stored value."""
    turnover_month = IntegerField('Monthly turnover target', validators=[Optional(), NumberRange(min=0)])
    turnover_week = IntegerField('Weekly turnover target', validators=[Optional(), NumberRange(min=0)])
    shifts_month = IntegerField('Monthly shifts target', validators=[Optional(), NumberRange(min=0)])
    shifts_week = FloatField('Weekly shifts target', validators=[Optional(), NumberRange(min=0)])


class SalaryRuleForm(ApiForm):
    """Form for adding a salary rule."""
    company_code = StringField('Company code', validators=[DataRequired(message="This field is required.")])
    shift_type = SelectField('Shift type', choices=[(s, s) for s in SHIFT_TYPES],
                             validators=[InputRequired(message="Please choose a shift type.")])
    base_per_shift = FloatField('Base per shift', validators=[Optional(), NumberRange(min=0)])
    threshold1_turnover = FloatField('Tier 1 turnover', validators=[Optional(), NumberRange(min=0)])
    threshold1_bonus = FloatField('Tier 1 bonus', validators=[Optional(), NumberRange(min=0)])
    threshold2_turnover = FloatField('Tier 2 turnover', validators=[Optional(), NumberRange(min=0)])
    threshold2_bonus = FloatField('Tier 2 bonus', validators=[Optional(), NumberRange(min=0)])
