# tests/test_compensation.py

from datetime import date
from io import StringIO

import pandas as pd
import pytest

from app.engine.compensation import (ShiftRule, build_rule_map, compute_pay, compute_payroll, compute_role_pay,
                                     reduce_adjustments, shift_pay, sum_weekly_debts)
from app.engine.periods import PayWindow
from app.engine.plan import Generated, PlanKey, PlanTargets
from app.engine.settings import CalculationConfig
from app.engine.validator import SnapshotError

TOLERANCE = 0.01
WEEK = PayWindow.for_week(date(2024, 3, 6))  # Mon 2024-03-04 .. Sun 2024-03-10
MARCH = PayWindow.for_month(date(2024, 3, 6))


@pytest.fixture
def salary_rules():
    return pd.read_csv(StringIO("""company_code,shift_type,base_per_shift,threshold1_turnover,threshold1_bonus,threshold2_turnover,threshold2_bonus,is_active
arena,day,8000,120000,2000,160000,2000,True
ramen,day,9000,100000,1500,,,True
ramen,night,1,1,1,1,1,False
"""))


@pytest.fixture
def revenue():
    """Operator 1 works two arena shifts in the week; the day shift is split over two records."""
    return pd.DataFrame([
        {'date': '2024-03-04', 'company_code': 'arena', 'operator_id': 1, 'shift': 'day', 'cash_amount': 100_000},
        {'date': '2024-03-04', 'company_code': 'arena', 'operator_id': 1, 'shift': 'day', 'card_amount': 30_000},
        {'date': '2024-03-05', 'company_code': 'arena', 'operator_id': 1, 'shift': 'night', 'kaspi_amount': 50_000},
        {'date': '2024-03-06', 'company_code': 'arena', 'operator_id': 2, 'shift': 'day', 'cash_amount': 40_000},
        {'date': '2024-03-12', 'company_code': 'ramen', 'operator_id': 1, 'shift': 'day', 'cash_amount': 0},
    ])


@pytest.fixture
def adjustments():
    return pd.DataFrame([
        {'operator_id': 1, 'date': '2024-03-05', 'amount': 5_000, 'kind': 'bonus'},
        {'operator_id': 1, 'date': '2024-03-05', 'amount': 1_000, 'kind': 'fine'},
        {'operator_id': 1, 'date': '2024-03-06', 'amount': 2_000, 'kind': 'debt'},
        {'operator_id': 1, 'date': '2024-03-07', 'amount': 3_000, 'kind': 'advance'},
        {'operator_id': 1, 'date': '2024-03-07', 'amount': -500, 'kind': 'bonus'},
        {'operator_id': 1, 'date': '2024-03-07', 'amount': 'n/a', 'kind': 'fine'},
        {'operator_id': 1, 'date': '2024-03-11', 'amount': 9_999, 'kind': 'bonus'},
        {'operator_id': 2, 'date': '2024-03-05', 'amount': 7_777, 'kind': 'bonus'},
    ])


@pytest.fixture
def weekly_debts():
    return pd.DataFrame([
        {'operator_id': 1, 'week_start': '2024-03-04', 'amount': 4_000, 'status': 'active'},
        {'operator_id': 1, 'week_start': '2024-03-04', 'amount': 7_000, 'status': 'closed'},
        {'operator_id': 1, 'week_start': '2024-03-11', 'amount': 1_000, 'status': 'active'},
        {'operator_id': 1, 'week_start': '2024-02-26', 'amount': 2_500, 'status': 'active'},
    ])


# --- Shift pay ---

@pytest.mark.parametrize("turnover, expected_bonus", [
    (119_999, 0),
    (120_000, 2_000),
    (159_999, 2_000),
    (160_000, 4_000),
])
def test_tier_boundaries(turnover, expected_bonus):
    rule = ShiftRule(8_000, 120_000, 2_000, 160_000, 2_000)
    base, bonus = shift_pay(turnover, rule, CalculationConfig())
    assert base == 8_000
    assert bonus == expected_bonus


def test_tiers_are_independent():
    # Only the second tier is reachable when the first threshold is higher.
    rule = ShiftRule(8_000, 200_000, 5_000, 150_000, 1_000)
    assert shift_pay(160_000, rule, CalculationConfig()) == (8_000, 1_000)


def test_zero_threshold_never_pays():
    rule = ShiftRule(8_000, 0, 2_000, 0, 2_000)
    assert shift_pay(1_000_000, rule, CalculationConfig()) == (8_000, 0)


def test_missing_rule_pays_default_base():
    assert shift_pay(500_000, None, CalculationConfig(DEFAULT_BASE_PER_SHIFT=7_500)) == (7_500, 0)


def test_rule_map_skips_inactive_and_keeps_first_duplicate(salary_rules):
    duplicated = pd.concat([salary_rules, salary_rules.iloc[[0]].assign(base_per_shift=1)], ignore_index=True)
    rules = build_rule_map(duplicated)
    assert set(rules) == {('arena', 'day'), ('ramen', 'day')}
    assert rules[('arena', 'day')].base_per_shift == 8_000
    assert rules[('ramen', 'day')].threshold2_turnover == 0


def test_snapshot_without_required_columns_is_rejected():
    with pytest.raises(SnapshotError) as excinfo:
        build_rule_map(pd.DataFrame([{'company_code': 'arena'}]))
    assert 'shift_type' in str(excinfo.value)


# --- Ledger and debts ---

def test_ledger_sign_semantics(adjustments):
    ledger = reduce_adjustments(adjustments, 1, WEEK)
    assert ledger.manual_plus == 5_000
    assert ledger.manual_minus == 3_000
    assert ledger.advances == 3_000


def test_weekly_debts_in_window(weekly_debts):
    assert sum_weekly_debts(weekly_debts, 1, WEEK) == 4_000
    assert sum_weekly_debts(weekly_debts, 1, MARCH) == 5_000
    assert sum_weekly_debts(weekly_debts, 2, WEEK) == 0


# --- Full breakdown ---

def test_weekly_pay_breakdown(revenue, salary_rules, adjustments, weekly_debts):
    pay = compute_pay(1, WEEK, revenue, salary_rules, adjustments, weekly_debts, config=CalculationConfig())

    # Day shift 130,000 hits tier 1; the night shift has no rule and gets the default base.
    assert pay.shifts == 2
    assert pay.period_turnover == 180_000
    assert pay.base_pay == 16_000
    assert pay.tier_bonus == 2_000
    assert pay.group_bonus == 0
    assert pay.kpi_bonus == 0 and pay.kpi_target is None
    assert abs(pay.payable - (18_000 + 5_000 - 3_000 - 4_000 - 3_000)) < TOLERANCE
    assert pay.net_penalty == 7_000


def test_group_bonus_uses_company_weekly_turnover(revenue, salary_rules):
    # Company week: 130,000 + 50,000 + 40,000 = 220,000
    config = CalculationConfig(GROUP_BONUS_WEEKLY_THRESHOLDS={'arena': 150_000}, GROUP_BONUS_PER_SHIFT=1_500)
    pay = compute_pay(1, WEEK, revenue, salary_rules, config=config)
    assert pay.group_bonus == 3_000

    config = CalculationConfig(GROUP_BONUS_WEEKLY_THRESHOLDS={'arena': 300_000}, GROUP_BONUS_PER_SHIFT=1_500)
    assert compute_pay(1, WEEK, revenue, salary_rules, config=config).group_bonus == 0


def _operator_plan(targets):
    return [
        Generated(PlanKey.operator(MARCH.start, code, 1), PlanTargets(turnover_month=target))
        for code, target in targets.items()
    ]


def test_kpi_bonus_when_monthly_target_is_hit(revenue, salary_rules):
    plan = _operator_plan({'arena': 100_000, 'ramen': 50_000})
    pay = compute_pay(1, MARCH, revenue, salary_rules, plan_rows=plan, config=CalculationConfig())

    assert pay.kpi_target == 150_000
    assert pay.kpi_bonus == pytest.approx(1_800)
    assert pay.payable == pytest.approx(18_000 + 1_800)


def test_kpi_bonus_not_paid_below_target_or_without_plan(revenue, salary_rules):
    config = CalculationConfig()
    assert compute_pay(1, MARCH, revenue, salary_rules, plan_rows=_operator_plan({'arena': 180_001}),
                       config=config).kpi_bonus == 0
    assert compute_pay(1, MARCH, revenue, salary_rules, plan_rows=_operator_plan({'arena': 0}),
                       config=config).kpi_bonus == 0
    assert compute_pay(1, MARCH, revenue, salary_rules, config=config).kpi_bonus == 0


def test_kpi_bonus_only_for_month_windows(revenue, salary_rules):
    pay = compute_pay(1, WEEK, revenue, salary_rules, plan_rows=_operator_plan({'arena': 1}),
                      config=CalculationConfig())
    assert pay.kpi_bonus == 0


def test_operator_without_shifts_still_settles_ledger(revenue, salary_rules, adjustments):
    pay = compute_pay(99, WEEK, revenue, salary_rules, adjustments, config=CalculationConfig())
    assert pay.shifts == 0 and pay.payable == 0


def test_payroll_lists_operators_by_label(revenue, salary_rules):
    payroll = compute_payroll(WEEK, revenue, salary_rules, config=CalculationConfig(),
                              operator_labels={1: 'Zed', 2: 'Amy'})
    assert [pay.operator_id for pay in payroll] == [2, 1]
    assert payroll[0].base_pay == 8_000


# --- Management roles ---

def test_role_pay_with_kpi():
    pay = compute_role_pay('supervisor', 500_000, 400_000, CalculationConfig())
    assert pay.fixed_salary == 300_000
    assert pay.kpi_bonus == pytest.approx(30_000)
    assert pay.payable == pytest.approx(330_000)


def test_role_pay_without_target_or_below_it():
    config = CalculationConfig()
    assert compute_role_pay('marketing', 500_000, None, config).payable == 250_000
    assert compute_role_pay('marketing', 399_999, 400_000, config).kpi_bonus == 0
    assert compute_role_pay('unknown', 500_000, 1, config, fixed_salary=1_000).payable == pytest.approx(1_100)
