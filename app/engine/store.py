# ==============================================================================
# app/engine/store.py
# ------------------------------------------------------------------------------
# Database side of the engine: read-only snapshot loaders (as DataFrames) and
# the plan store, which upserts rows by identity key and never overwrites a
# row that is locked at the moment of the write.
# ==============================================================================

import json
import logging
from datetime import timedelta
import pandas as pd
from sqlalchemy.exc import IntegrityError
from app import db
from app.models import (Company, Income, KpiPlan, Operator, SalaryAdjustment,
                        SalaryRule, WeeklyDebt)
from .allocator import generate_plan
from .compensation import compute_pay, compute_payroll, compute_role_pay
from .periods import add_months, month_end, month_start
from .plan import Generated, Locked, PlanKey, PlanTargets, role_turnover_target
from .schema import CHANNEL_COLUMNS, EXPECTED_FRAMES, PLAN_ENTITY_TYPES
from .settings import CalculationConfig
from .snapshot import prepare_revenue
from .validator import IdentityConflictError, find_duplicate_keys

REVENUE_COLUMNS = ['date', 'company_code', 'operator_id', 'shift'] + CHANNEL_COLUMNS


def _frame(name, records):
    columns = EXPECTED_FRAMES[name]['required_columns'] + EXPECTED_FRAMES[name]['optional_columns']
    return pd.DataFrame(records, columns=columns)


# --- Snapshot loaders ---

def load_revenue_snapshot(date_from, date_to, company_code=None, operator_id=None):
    """Revenue records dated in [date_from, date_to], optionally for one company and/or operator."""
    query = db.session.query(Income, Company.code).join(Company, Income.company_id == Company.id) \
        .filter(Income.date >= date_from, Income.date <= date_to)
    if company_code is not None:
        query = query.filter(Company.code == company_code)
    if operator_id is not None:
        query = query.filter(Income.operator_id == operator_id)

    records = [{
        'date': income.date, 'company_code': code, 'operator_id': income.operator_id,
        'shift': income.shift, 'cash_amount': income.cash_amount, 'kaspi_amount': income.kaspi_amount,
        'card_amount': income.card_amount, 'online_amount': income.online_amount,
    } for income, code in query.all()]
    return pd.DataFrame(records, columns=REVENUE_COLUMNS)

def load_salary_rules():
    rules = SalaryRule.query.filter_by(is_active=True).order_by(SalaryRule.id).all()
    return _frame('salary_rules', [{
        'company_code': r.company_code, 'shift_type': r.shift_type, 'base_per_shift': r.base_per_shift,
        'threshold1_turnover': r.threshold1_turnover, 'threshold1_bonus': r.threshold1_bonus,
        'threshold2_turnover': r.threshold2_turnover, 'threshold2_bonus': r.threshold2_bonus,
        'is_active': r.is_active,
    } for r in rules])

def load_adjustments(date_from, date_to, operator_id=None):
    query = SalaryAdjustment.query.filter(SalaryAdjustment.date >= date_from, SalaryAdjustment.date <= date_to)
    if operator_id is not None:
        query = query.filter(SalaryAdjustment.operator_id == operator_id)
    return _frame('adjustments', [{
        'operator_id': a.operator_id, 'date': a.date, 'amount': a.amount, 'kind': a.kind, 'comment': a.comment,
    } for a in query.all()])

def load_weekly_debts(week_from, week_to, operator_id=None):
    query = WeeklyDebt.query.filter(WeeklyDebt.status == 'active',
                                    WeeklyDebt.week_start >= week_from, WeeklyDebt.week_start <= week_to)
    if operator_id is not None:
        query = query.filter(WeeklyDebt.operator_id == operator_id)
    return _frame('weekly_debts', [{
        'operator_id': d.operator_id, 'week_start': d.week_start, 'amount': d.amount,
        'status': d.status, 'comment': d.comment,
    } for d in query.all()])

def operator_labels():
    return {op.id: op.label for op in Operator.query.all()}


# --- Plan store ---

def _to_plan_row(record):
    key = PlanKey(record.period_start, record.entity_type, record.company_code,
                  record.operator_id, record.role_code)
    targets = PlanTargets(record.turnover_target_month, record.turnover_target_week,
                          record.shifts_target_month, record.shifts_target_week, record.get_meta())
    return Locked(key, targets) if record.is_locked else Generated(key, targets)

def _apply_targets(record, targets):
    record.turnover_target_month = targets.turnover_month
    record.turnover_target_week = targets.turnover_week
    record.shifts_target_month = targets.shifts_month
    record.shifts_target_week = targets.shifts_week
    record.meta_json = json.dumps(targets.meta, ensure_ascii=False) if targets.meta else None

def load_plan_records(month):
    """(row id, plan row) pairs of the month, in storage order."""
    records = KpiPlan.query.filter_by(period_start=month_start(month)).order_by(KpiPlan.id).all()
    return [(record.id, _to_plan_row(record)) for record in records]

def load_plan(month):
    return [row for _, row in load_plan_records(month)]

def save_plan(month, rows):
    """
    Upserts `rows` by identity key. Each stored row is re-read right before it
    is written and left untouched if it is locked by then. Unlocked stored rows
    of the month that are not in `rows` are removed.

    The stored lock flag is authoritative: a `Locked` row in `rows` whose stored
    counterpart has been unlocked since is skipped, and new rows are written
    with the lock state they carry.

    Raises:
        IdentityConflictError: duplicate keys in `rows`, or a uniqueness
            violation reported by the database (nothing is written).
    """
    month = month_start(month)
    errors = find_duplicate_keys(rows)
    errors += [f"Plan row {row.key.identity} does not belong to {month:%Y-%m}."
               for row in rows if row.key.month_start != month]
    errors += [f"Plan row {row.key.identity} has an unknown entity type."
               for row in rows if row.key.entity_type not in PLAN_ENTITY_TYPES]
    if errors:
        raise IdentityConflictError(errors)

    written, preserved, unlocked = 0, 0, 0
    identities = set()
    try:
        for row in rows:
            identity = row.key.identity
            identities.add(identity)
            record = KpiPlan.query.filter_by(identity=identity).populate_existing().first()
            if record is not None and record.is_locked:
                preserved += 1
                continue
            if record is not None and row.locked:
                # Unlocked after `rows` was built; its manual values are stale.
                unlocked += 1
                continue
            if record is None:
                record = KpiPlan(identity=identity, period_start=row.key.month_start,
                                 entity_type=row.key.entity_type, company_code=row.key.company_code,
                                 operator_id=row.key.operator_id, role_code=row.key.role_code,
                                 is_locked=row.locked)
                db.session.add(record)
            _apply_targets(record, row.targets)
            db.session.flush()
            written += 1

        stale = KpiPlan.query.filter(KpiPlan.period_start == month, KpiPlan.is_locked.is_(False)).all()
        removed = 0
        for record in stale:
            if record.identity not in identities:
                db.session.delete(record)
                removed += 1
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logging.error(f"Plan save for {month:%Y-%m} hit an identity conflict: {e}", exc_info=True)
        raise IdentityConflictError([f"Plan for {month:%Y-%m} conflicts with a concurrently stored row: {e.orig}"]) from e

    if unlocked:
        logging.warning(f"Plan {month:%Y-%m}: {unlocked} row(s) unlocked since generation were left as stored.")
    logging.info(f"Plan {month:%Y-%m} saved: {written} written, {preserved} locked row(s) kept, {removed} stale removed.")
    return written, preserved

def regenerate_plan(month, config=None, today=None):
    """
    Generates the month's plan from the two previous months and stores it.
    Locked stored rows are kept by `save_plan` at write time, so the fresh
    rows are saved without merging an earlier read of the plan.
    """
    config = config or CalculationConfig.from_settings()
    month = month_start(month)
    revenue = load_revenue_snapshot(add_months(month, -2), month - timedelta(days=1))
    rows = generate_plan(month, revenue, config, operator_labels=operator_labels(), today=today)
    save_plan(month, rows)
    return load_plan(month)

def update_plan_row(row_id, **targets):
    """Manual edit of a stored plan row's targets. Edited rows are locked."""
    record = db.get_or_404(KpiPlan, row_id)
    current = _to_plan_row(record).targets
    values = {
        'turnover_month': current.turnover_month, 'turnover_week': current.turnover_week,
        'shifts_month': current.shifts_month, 'shifts_week': current.shifts_week, 'meta': current.meta,
    }
    values.update({k: v for k, v in targets.items() if v is not None})
    _apply_targets(record, PlanTargets(**values))
    record.is_locked = True
    db.session.commit()
    logging.info(f"Plan row {record.identity} edited manually and locked.")
    return _to_plan_row(record)

def unlock_plan_row(row_id):
    record = db.get_or_404(KpiPlan, row_id)
    record.is_locked = False
    db.session.commit()
    return _to_plan_row(record)

def save_salary_rule(company_code, shift_type, base_per_shift, threshold1_turnover=None, threshold1_bonus=None,
                     threshold2_turnover=None, threshold2_bonus=None, is_active=True, rule_id=None):
    """
    Creates (or updates, with `rule_id`) a salary rule.

    Raises:
        IdentityConflictError: another active rule exists for the same company and shift type.
    """
    company_code = company_code.strip().lower()
    if is_active:
        clash = SalaryRule.query.filter(SalaryRule.company_code == company_code,
                                        SalaryRule.shift_type == shift_type,
                                        SalaryRule.is_active.is_(True))
        if rule_id is not None:
            clash = clash.filter(SalaryRule.id != rule_id)
        existing = clash.first()
        if existing is not None:
            raise IdentityConflictError([
                f"An active salary rule for {company_code}/{shift_type} already exists (id {existing.id})."
            ])

    rule = db.get_or_404(SalaryRule, rule_id) if rule_id is not None else SalaryRule()
    rule.company_code = company_code
    rule.shift_type = shift_type
    rule.base_per_shift = base_per_shift
    rule.threshold1_turnover = threshold1_turnover
    rule.threshold1_bonus = threshold1_bonus
    rule.threshold2_turnover = threshold2_turnover
    rule.threshold2_bonus = threshold2_bonus
    rule.is_active = is_active
    if rule_id is None:
        db.session.add(rule)
    db.session.commit()
    return rule


# --- Pay ---

def _revenue_for_window(window):
    # Whole weeks, so company weekly totals for the group bonus are complete.
    first_week, last_week = window.weeks()
    return load_revenue_snapshot(first_week, last_week + timedelta(days=6))

def operator_pay(operator_id, window, config=None):
    config = config or CalculationConfig.from_settings()
    return compute_pay(
        operator_id, window, _revenue_for_window(window), load_salary_rules(),
        load_adjustments(window.start, window.end, operator_id),
        load_weekly_debts(window.start, window.end, operator_id),
        load_plan(window.start) if window.kind == 'month' else (), config,
    )

def payroll(window, config=None):
    config = config or CalculationConfig.from_settings()
    return compute_payroll(
        window, _revenue_for_window(window), load_salary_rules(),
        load_adjustments(window.start, window.end),
        load_weekly_debts(window.start, window.end),
        load_plan(window.start) if window.kind == 'month' else (), config, operator_labels(),
    )

def role_pay(role, month, config=None):
    config = config or CalculationConfig.from_settings()
    month = month_start(month)
    revenue = prepare_revenue(load_revenue_snapshot(month, month_end(month)), config.COMPANY_CODES)
    global_turnover = float(revenue['turnover'].sum())
    return compute_role_pay(role, global_turnover, role_turnover_target(load_plan(month), role, month), config)
