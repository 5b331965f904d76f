# ==============================================================================
# app/engine/compensation.py
# ------------------------------------------------------------------------------
# Operator pay from shift-level revenue: base pay per shift, two independent
# turnover tiers, an optional company-wide weekly group bonus, a KPI bonus
# gated on the monthly plan, then the manual adjustment ledger and the
# automatic weekly debts. Management roles are paid a fixed salary plus KPI.
# ==============================================================================

import logging
import math
from collections import namedtuple
from dataclasses import dataclass
import numpy as np
import pandas as pd
from .plan import operator_turnover_target
from .schema import ADJUSTMENT_KINDS
from .settings import CalculationConfig
from .snapshot import prepare_revenue
from .validator import require_frame

ShiftRule = namedtuple('ShiftRule', [
    'base_per_shift', 'threshold1_turnover', 'threshold1_bonus',
    'threshold2_turnover', 'threshold2_bonus'
])

LedgerTotals = namedtuple('LedgerTotals', ['manual_plus', 'manual_minus', 'advances'])


@dataclass
class PayBreakdown:
    operator_id: object
    window: object
    shifts: int = 0
    period_turnover: float = 0.0
    base_pay: float = 0.0
    tier_bonus: float = 0.0
    group_bonus: float = 0.0
    kpi_target: float = None
    kpi_bonus: float = 0.0
    manual_plus: float = 0.0
    manual_minus: float = 0.0
    auto_debts: float = 0.0
    advances: float = 0.0
    payable: float = 0.0

    @property
    def pay_with_bonuses(self):
        return self.base_pay + self.tier_bonus + self.group_bonus + self.kpi_bonus

    @property
    def net_penalty(self):
        """Fines, ledger debts and weekly debts. Advances are pay received early, not a penalty."""
        return self.manual_minus + self.auto_debts


@dataclass
class RolePay:
    role: str
    fixed_salary: float
    global_turnover: float
    role_target: float
    kpi_bonus: float
    payable: float


def _optional_number(value):
    """Finite float, or None for None, NaN, inf and anything non-numeric."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None

def _number(value):
    number = _optional_number(value)
    return 0.0 if number is None else number


def build_rule_map(salary_rules):
    """(company_code, shift_type) -> ShiftRule for every active rule."""
    df = require_frame('salary_rules', salary_rules)
    rules = {}
    for row in df.itertuples(index=False):
        if row.is_active is not None and not pd.isna(row.is_active) and not bool(row.is_active):
            continue
        key = (str(row.company_code).strip().lower(), row.shift_type)
        if key in rules:
            logging.warning(f"Duplicate active salary rule for {key}; keeping the first one.")
            continue
        rules[key] = ShiftRule(
            base_per_shift=_optional_number(row.base_per_shift),
            threshold1_turnover=_number(row.threshold1_turnover),
            threshold1_bonus=_number(row.threshold1_bonus),
            threshold2_turnover=_number(row.threshold2_turnover),
            threshold2_bonus=_number(row.threshold2_bonus),
        )
    return rules


def shift_pay(turnover, rule, config):
    """
    (base, tier bonus) for one shift. The two tiers are checked independently;
    a tier with no threshold never pays.
    """
    if rule is None:
        return config.DEFAULT_BASE_PER_SHIFT, 0.0

    base = config.DEFAULT_BASE_PER_SHIFT if rule.base_per_shift is None else rule.base_per_shift

    bonus = 0.0
    if rule.threshold1_turnover > 0 and turnover >= rule.threshold1_turnover:
        bonus += rule.threshold1_bonus
    if rule.threshold2_turnover > 0 and turnover >= rule.threshold2_turnover:
        bonus += rule.threshold2_bonus
    return float(base), bonus


def group_bonus_weeks(frame, config):
    """Set of (company_code, week Timestamp) whose company-wide turnover unlocks the group bonus."""
    if frame.empty or config.GROUP_BONUS_PER_SHIFT <= 0:
        return set()
    weekly = frame.groupby(['company_code', 'week'])['turnover'].sum()
    qualifying = set()
    for (code, week), total in weekly.items():
        threshold = config.group_bonus_threshold(code)
        if threshold > 0 and total >= threshold:
            qualifying.add((code, week))
    return qualifying


def reduce_adjustments(adjustments, operator_id, window):
    """
    Sums the operator's ledger entries dated inside the window.
    bonus -> manual_plus, debt and fine -> manual_minus, advance -> advances.
    Non-numeric, non-finite and non-positive amounts are skipped.
    """
    df = require_frame('adjustments', adjustments)
    if df.empty:
        return LedgerTotals(0.0, 0.0, 0.0)

    dates = pd.to_datetime(df['date'], errors='coerce')
    amounts = pd.to_numeric(df['amount'], errors='coerce')
    mine = (df['operator_id'] == operator_id) & (dates >= pd.Timestamp(window.start)) & (dates <= pd.Timestamp(window.end))

    invalid = mine & ~(np.isfinite(amounts) & (amounts > 0))
    if invalid.any():
        logging.warning(f"Skipping {int(invalid.sum())} adjustment(s) of operator {operator_id} with an invalid amount.")

    valid = mine & ~invalid
    by_kind = amounts[valid].groupby(df.loc[valid, 'kind']).sum()
    unknown = set(by_kind.index) - set(ADJUSTMENT_KINDS)
    if unknown:
        logging.warning(f"Ignoring adjustments of unknown kind(s) {sorted(map(str, unknown))} for operator {operator_id}.")

    return LedgerTotals(
        manual_plus=float(by_kind.get('bonus', 0.0)),
        manual_minus=float(by_kind.get('debt', 0.0)) + float(by_kind.get('fine', 0.0)),
        advances=float(by_kind.get('advance', 0.0)),
    )


def sum_weekly_debts(weekly_debts, operator_id, window):
    """Active, positive weekly debts of the operator whose week starts inside the window."""
    df = require_frame('weekly_debts', weekly_debts)
    if df.empty:
        return 0.0
    weeks = pd.to_datetime(df['week_start'], errors='coerce')
    amounts = pd.to_numeric(df['amount'], errors='coerce')
    mask = (
        (df['operator_id'] == operator_id)
        & (df['status'] == 'active')
        & (weeks >= pd.Timestamp(window.start))
        & (weeks <= pd.Timestamp(window.end))
        & np.isfinite(amounts) & (amounts > 0)
    )
    return float(amounts[mask].sum())


def compute_pay(operator_id, window, revenue, salary_rules, adjustments=None, weekly_debts=None,
                plan_rows=(), config=None):
    """
    Pay breakdown of one operator for one window.

    Args:
        operator_id: The operator being paid.
        window (PayWindow): Week or month being reported.
        revenue: Revenue snapshot. Should hold every operator's records for the
            weeks overlapping the window so company weekly totals (group bonus)
            are complete; only the operator's records inside the window are paid.
        salary_rules: Salary rule snapshot.
        adjustments: Manual ledger snapshot.
        weekly_debts: Weekly debt snapshot.
        plan_rows (iterable): Plan rows; the operator rows of the window's month
            set the KPI target (month windows only).
        config (CalculationConfig): Engine settings.

    Returns:
        PayBreakdown
    """
    config = config or CalculationConfig()
    rules = build_rule_map(salary_rules)
    frame = prepare_revenue(revenue, config.COMPANY_CODES)
    bonus_weeks = group_bonus_weeks(frame, config)

    in_window = (frame['date'] >= pd.Timestamp(window.start)) & (frame['date'] <= pd.Timestamp(window.end))
    mine = frame[in_window & (frame['operator_id'] == operator_id)]

    result = PayBreakdown(operator_id=operator_id, window=window)
    shifts = mine.groupby(['company_code', 'date', 'shift', 'week'])['turnover'].sum()
    for (code, day, shift, week), turnover in shifts.items():
        base, tier = shift_pay(turnover, rules.get((code, shift)), config)
        result.shifts += 1
        result.period_turnover += float(turnover)
        result.base_pay += base
        result.tier_bonus += tier
        if (code, week) in bonus_weeks:
            result.group_bonus += config.GROUP_BONUS_PER_SHIFT

    if window.kind == 'month':
        result.kpi_target = operator_turnover_target(plan_rows, operator_id, window.start)
        # A missing or zero target earns no KPI bonus.
        if result.kpi_target and result.period_turnover >= result.kpi_target:
            result.kpi_bonus = (result.base_pay + result.tier_bonus + result.group_bonus) * config.KPI_BONUS_RATE

    ledger = reduce_adjustments(adjustments, operator_id, window)
    result.manual_plus, result.manual_minus, result.advances = ledger
    result.auto_debts = sum_weekly_debts(weekly_debts, operator_id, window)

    result.payable = (result.pay_with_bonuses + result.manual_plus - result.manual_minus
                      - result.auto_debts - result.advances)
    logging.debug(f"Pay for operator {operator_id} {window.start}..{window.end}: {result}")
    return result


def compute_payroll(window, revenue, salary_rules, adjustments=None, weekly_debts=None,
                    plan_rows=(), config=None, operator_labels=None):
    """Pay breakdowns for every operator with at least one shift in the window, ordered by label."""
    config = config or CalculationConfig()
    labels = operator_labels or {}
    frame = prepare_revenue(revenue, config.COMPANY_CODES)
    in_window = (frame['date'] >= pd.Timestamp(window.start)) & (frame['date'] <= pd.Timestamp(window.end))
    operator_ids = {op for op in frame.loc[in_window, 'operator_id'] if op is not None}

    payroll = [
        compute_pay(op, window, frame, salary_rules, adjustments, weekly_debts, plan_rows, config)
        for op in operator_ids
    ]
    payroll.sort(key=lambda pay: (str(labels.get(pay.operator_id, '')), str(pay.operator_id)))
    logging.info(f"Payroll {window.start}..{window.end}: {len(payroll)} operator(s), "
                 f"total payable {sum(pay.payable for pay in payroll):,.0f}.")
    return payroll


def compute_role_pay(role, global_turnover, role_target, config=None, fixed_salary=None):
    """
    Management roles skip shift aggregation: fixed salary, plus the KPI share
    of it when the global monthly turnover reaches the role's target.
    """
    config = config or CalculationConfig()
    if fixed_salary is None:
        fixed_salary = _number((config.ROLE_FIXED_SALARIES or {}).get(role, 0))
    role_target = _number(role_target)
    hit = role_target > 0 and global_turnover >= role_target
    kpi_bonus = fixed_salary * config.KPI_BONUS_RATE if hit else 0.0
    return RolePay(role, fixed_salary, float(global_turnover), role_target, kpi_bonus, fixed_salary + kpi_bonus)
