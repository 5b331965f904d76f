# ==============================================================================
# app/engine/allocator.py
# ------------------------------------------------------------------------------
# Builds a month's KPI plan: a collective row per company (forecast turnover
# and shift count), personal rows distributing that forecast over operators by
# their historical share, and role rows carrying the global monthly target.
# Locked rows of the previous generation are merged back in unchanged.
# ==============================================================================

import logging
from datetime import date
import numpy as np
import pandas as pd
from .forecast import calculate_forecast, round_half_up
from .periods import add_months, month_start, partial_factor
from .plan import Generated, PlanKey, PlanTargets, merge_locked
from .settings import CalculationConfig
from .snapshot import clean_id, count_shifts, prepare_revenue
from .validator import IdentityConflictError, find_duplicate_keys


def _targets(turnover_month, shifts_month, config, meta):
    weeks = config.WEEKS_PER_MONTH
    return PlanTargets(
        turnover_month=turnover_month,
        turnover_week=round_half_up(turnover_month / weeks),
        shifts_month=shifts_month,
        shifts_week=round(shifts_month / weeks, 2),
        meta=meta,
    )


def _shift_split(weighted, shifts, turnover_target):
    by_shift = weighted.groupby(shifts).sum()
    total = float(by_shift.sum())
    if total <= 0:
        return {'day': 0, 'night': 0}
    day = round_half_up(turnover_target * float(by_shift.get('day', 0.0)) / total)
    return {'day': day, 'night': turnover_target - day}


def _allocate_company(month, code, company, factor, config, today, labels):
    """Returns (rows, collective turnover target) for one company."""
    prev1_ts = pd.Timestamp(add_months(month, -1))
    prev2_ts = pd.Timestamp(add_months(month, -2))
    prev1 = company[company['month'] == prev1_ts]
    prev2 = company[company['month'] == prev2_ts]

    turnover2, turnover1 = float(prev2['turnover'].sum()), float(prev1['turnover'].sum())
    shifts2, shifts1 = count_shifts(prev2), count_shifts(prev1)

    turnover_fc = calculate_forecast(month, turnover2, turnover1, config, today)
    shifts_fc = calculate_forecast(month, shifts2, shifts1, config, today)
    has_shifts = (shifts1 + shifts2) > 0
    turnover_target = turnover_fc.forecast if has_shifts else 0
    shifts_target = shifts_fc.forecast if has_shifts else 0

    # Recent-month contributions are scaled up when that month is still running.
    weighted = company['turnover'] * np.where(company['month'] == prev1_ts, factor, 1.0)

    logging.debug(
        f"  {code}: turnover {turnover2:,.0f} -> {turnover1:,.0f} (est. {turnover_fc.estimated_prior:,.0f}), "
        f"shifts {shifts2} -> {shifts1}, target {turnover_target:,} / {shifts_target} shifts"
    )

    rows = [Generated(PlanKey.collective(month, code), _targets(turnover_target, shifts_target, config, {
        'baseline': {'prev2': prev2_ts.date().isoformat(), 'prev1': prev1_ts.date().isoformat()},
        'basis': {'prev2': turnover2, 'prev1': turnover1, 'prev1_estimated': turnover_fc.estimated_prior},
        'shifts_basis': {'prev2': shifts2, 'prev1': shifts1, 'prev1_estimated': shifts_fc.estimated_prior},
        'is_partial': turnover_fc.is_partial,
        'trend_pct': round(turnover_fc.trend_percent, 1),
        'shift_split': _shift_split(weighted, company['shift'], turnover_target),
    }))]

    if not has_shifts:
        return rows, turnover_target

    with_operator = company['operator_id'].notna()
    basis = weighted[with_operator].groupby(company.loc[with_operator, 'operator_id']).sum()
    total_weight = float(basis.sum())
    if total_weight <= 0:
        logging.warning(f"  {code}: no operator turnover in the lookback months, skipping personal plans.")
        return rows, turnover_target

    for operator_id, contribution in basis.items():
        operator_id = clean_id(operator_id)
        contribution = float(contribution)
        if contribution < config.MIN_OPERATOR_CONTRIBUTION:
            logging.debug(f"  {code}: operator {operator_id} below noise floor ({contribution:,.0f}), no plan row.")
            continue
        share = contribution / total_weight
        rows.append(Generated(PlanKey.operator(month, code, operator_id), _targets(
            round_half_up(turnover_target * share),
            round_half_up(shifts_target * share),
            config,
            {'share_pct': round(share * 100, 2), 'basis': round(contribution, 2),
             'label': labels.get(operator_id)},
        )))

    return rows, turnover_target


def generate_plan(target_month, revenue, config=None, previous=(), operator_labels=None, today=None):
    """
    Generates the KPI plan for the month containing `target_month`.

    Args:
        target_month (date): Any day of the month being planned.
        revenue: Revenue snapshot covering (at least) the two months before it.
        config (CalculationConfig): Engine settings.
        previous (iterable): Rows of the previous generation; its Locked rows win.
        operator_labels (dict): operator id -> display label, stored as metadata only.
        today (date): "Now", for partial-month detection.

    Returns:
        list: Generated and Locked plan rows.
    """
    config = config or CalculationConfig()
    today = today or date.today()
    month = month_start(target_month)
    labels = operator_labels or {}

    lookback = [pd.Timestamp(add_months(month, -2)), pd.Timestamp(add_months(month, -1))]
    frame = prepare_revenue(revenue, config.COMPANY_CODES)
    frame = frame[frame['month'].isin(lookback)]
    factor = partial_factor(add_months(month, -1), today)

    logging.info(f"--- Generating KPI plan for {month:%Y-%m} from {len(frame)} revenue records (partial factor {factor:.3f}). ---")

    fresh = []
    collective_total = 0
    for code in config.COMPANY_CODES:
        rows, turnover_target = _allocate_company(
            month, code, frame[frame['company_code'] == code], factor, config, today, labels)
        fresh.extend(rows)
        collective_total += turnover_target

    for role in config.MANAGEMENT_ROLES:
        fresh.append(Generated(PlanKey.role(month, role), _targets(collective_total, 0, config, {
            'note': 'Responsible for the collective plan',
            'companies': list(config.COMPANY_CODES),
        })))

    errors = find_duplicate_keys(fresh)
    if errors:
        raise IdentityConflictError(errors)

    merged = merge_locked(fresh, [row for row in previous if row.key.month_start == month])
    preserved = sum(1 for row in merged if row.locked)
    logging.info(f"--- Plan for {month:%Y-%m}: {len(merged)} rows, {preserved} locked row(s) preserved. ---")
    return merged
