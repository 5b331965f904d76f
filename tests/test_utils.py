# tests/test_utils.py

from datetime import date

from app.engine.compensation import PayBreakdown
from app.engine.periods import PayWindow
from app.main.utils import summarize_payroll

WEEK = PayWindow.for_week(date(2024, 3, 6))


def test_payroll_summary_ranks_by_net_penalty_without_advances():
    payroll = [
        PayBreakdown(1, WEEK, shifts=2, base_pay=16_000, advances=50_000, payable=-34_000),
        PayBreakdown(2, WEEK, shifts=1, base_pay=8_000, manual_minus=1_000, payable=7_000),
        PayBreakdown(3, WEEK, shifts=1, base_pay=8_000, manual_minus=200, auto_debts=300,
                     advances=20_000, payable=-12_500),
        PayBreakdown(4, WEEK, shifts=1, base_pay=8_000, payable=8_000),
    ]
    summary = summarize_payroll(payroll)

    assert summary['penalized'] == [2, 3]
    assert summary['net_penalty'] == 1_500
    assert summary['operators'] == 4
    assert summary['shifts'] == 5
    assert summary['payable'] == -31_500


def test_payroll_summary_of_advances_only_flags_nobody():
    summary = summarize_payroll([PayBreakdown(1, WEEK, advances=50_000, payable=-50_000)])
    assert summary['penalized'] == []
    assert summary['net_penalty'] == 0


def test_empty_payroll_summary():
    summary = summarize_payroll([])
    assert summary['operators'] == 0
    assert summary['penalized'] == []
