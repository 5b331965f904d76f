# ==============================================================================
# app/main/routes.py
# ------------------------------------------------------------------------------
# JSON endpoints of the main blueprint: forecast overview, KPI plans, salary
# rules, engine settings and pay reports. All business logic lives in
# app/engine; the views only parse input and serialize results.
# ==============================================================================

import json
from datetime import date, timedelta
from flask import abort, jsonify, request
from werkzeug.exceptions import HTTPException

from app import db
from app.main import bp
from app.models import AppSetting, Operator, SalaryRule
from app.engine.forecast import forecast_companies
from app.engine.periods import PayWindow, add_months, parse_date, parse_month
from app.engine.settings import CalculationConfig
from app.engine.store import (load_plan_records, load_revenue_snapshot, operator_labels, operator_pay,
                              payroll, regenerate_plan, role_pay, save_salary_rule, unlock_plan_row,
                              update_plan_row)
from app.engine.validator import IdentityConflictError
from app.main.forms import AppSettingForm, PlanRowForm, SalaryRuleForm
from app.main.utils import pay_to_dict, plan_row_to_dict, summarize_payroll, window_to_dict

# --- Helper Functions ---

def _month_arg(value):
    try:
        return parse_month(value)
    except (TypeError, ValueError):
        abort(400, description=f"Invalid month '{value}', expected YYYY-MM.")

def _date_arg(name, default=None):
    value = request.args.get(name)
    if value is None:
        return default
    try:
        return parse_date(value)
    except ValueError:
        abort(400, description=f"Invalid date '{value}' for '{name}', expected YYYY-MM-DD.")

def _form_errors(form):
    return jsonify({'error': 'Invalid input.', 'fields': form.errors}), 400

@bp.errorhandler(IdentityConflictError)
def identity_conflict(e):
    return jsonify({'error': 'Identity conflict.', 'details': e.errors}), 409

@bp.errorhandler(HTTPException)
def http_error(e):
    return jsonify({'error': e.description}), e.code

# --- Forecast and plans ---

@bp.route('/api/forecast')
def forecast():
    """Per-company forecast for ?month=YYYY-MM (defaults to next month)."""
    today = _date_arg('today', date.today())
    month = _month_arg(request.args.get('month', add_months(today, 1).isoformat()))
    revenue = load_revenue_snapshot(add_months(month, -2), month - timedelta(days=1))
    return jsonify(forecast_companies(month, revenue, CalculationConfig.from_settings(), today))

@bp.route('/api/plans/<month>')
def list_plan(month):
    month = _month_arg(month)
    rows = [plan_row_to_dict(row, row_id) for row_id, row in load_plan_records(month)]
    return jsonify({'month': month.isoformat(), 'rows': rows})

@bp.route('/api/plans/<month>/generate', methods=['POST'])
def generate_plan(month):
    month = _month_arg(month)
    today = _date_arg('today', date.today())
    rows = regenerate_plan(month, CalculationConfig.from_settings(), today)
    locked = sum(1 for row in rows if row.locked)
    return jsonify({
        'month': month.isoformat(), 'generated': len(rows) - locked, 'locked': locked,
        'rows': [plan_row_to_dict(row, row_id) for row_id, row in load_plan_records(month)],
    })

@bp.route('/api/plan-rows/<int:row_id>', methods=['POST'])
def edit_plan_row(row_id):
    form = PlanRowForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    targets = {name: field.data for name, field in form._fields.items()}
    row = update_plan_row(row_id, **targets)
    return jsonify(plan_row_to_dict(row, row_id))

@bp.route('/api/plan-rows/<int:row_id>/unlock', methods=['POST'])
def unlock_row(row_id):
    return jsonify(plan_row_to_dict(unlock_plan_row(row_id), row_id))

# --- Salary rules and settings ---

def _save_rule_from_form(form, **kwargs):
    return save_salary_rule(
        form.company_code.data, form.shift_type.data, form.base_per_shift.data,
        form.threshold1_turnover.data, form.threshold1_bonus.data,
        form.threshold2_turnover.data, form.threshold2_bonus.data, **kwargs,
    )

def _rule_to_dict(rule):
    return {'id': rule.id, 'company_code': rule.company_code, 'shift_type': rule.shift_type,
            'base_per_shift': rule.base_per_shift, 'is_active': rule.is_active}

@bp.route('/api/salary-rules', methods=['POST'])
def add_salary_rule():
    form = SalaryRuleForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    return jsonify(_rule_to_dict(_save_rule_from_form(form))), 201

@bp.route('/api/salary-rules/<int:rule_id>', methods=['POST'])
def edit_salary_rule(rule_id):
    rule = db.get_or_404(SalaryRule, rule_id)
    form = SalaryRuleForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    return jsonify(_rule_to_dict(_save_rule_from_form(form, is_active=rule.is_active, rule_id=rule.id)))

@bp.route('/api/settings')
def list_settings():
    settings = AppSetting.query.order_by(AppSetting.key).all()
    return jsonify([{'id': s.id, 'key': s.key, 'value': s.value, 'value_type': s.value_type,
                     'description': s.description} for s in settings])

@bp.route('/api/settings/<int:setting_id>', methods=['POST'])
def edit_setting(setting_id):
    setting = db.get_or_404(AppSetting, setting_id)
    form = AppSettingForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    new_value = str(form.value.data).strip()
    try:
        if setting.value_type == 'json':
            new_value = json.dumps(json.loads(new_value), ensure_ascii=False)
        elif setting.value_type == 'float':
            float(new_value)
        elif setting.value_type == 'int':
            int(new_value)
    except ValueError:
        return jsonify({'error': f"'{new_value}' is not a valid {setting.value_type} for {setting.key}."}), 400
    setting.value = new_value
    db.session.commit()
    return jsonify({'id': setting.id, 'key': setting.key, 'value': setting.value})

# --- Pay ---

@bp.route('/api/operators/<int:operator_id>/pay')
def operator_pay_report(operator_id):
    """Weekly and monthly breakdown for the week and month containing ?date= (defaults to today)."""
    operator = db.get_or_404(Operator, operator_id)
    day = _date_arg('date', date.today())
    config = CalculationConfig.from_settings()
    week = operator_pay(operator.id, PayWindow.for_week(day), config)
    month = operator_pay(operator.id, PayWindow.for_month(day), config)
    return jsonify({
        'operator_id': operator.id, 'label': operator.label,
        'week': pay_to_dict(week, operator.label),
        'month': pay_to_dict(month, operator.label),
    })

@bp.route('/api/payroll/week')
def weekly_payroll():
    window = PayWindow.for_week(_date_arg('date', date.today()))
    labels = operator_labels()
    breakdowns = payroll(window, CalculationConfig.from_settings())
    return jsonify({
        'window': window_to_dict(window),
        'summary': summarize_payroll(breakdowns),
        'operators': [pay_to_dict(pay, labels.get(pay.operator_id)) for pay in breakdowns],
    })

@bp.route('/api/roles/<role>/pay')
def role_pay_report(role):
    config = CalculationConfig.from_settings()
    if role not in config.MANAGEMENT_ROLES:
        abort(404, description=f"Unknown role '{role}'.")
    month = _month_arg(request.args.get('month', date.today().isoformat()))
    result = role_pay(role, month, config)
    return jsonify({'month': month.isoformat(), 'role': result.role, 'fixed_salary': result.fixed_salary,
                    'global_turnover': result.global_turnover, 'role_target': result.role_target,
                    'kpi_bonus': result.kpi_bonus, 'payable': result.payable})
