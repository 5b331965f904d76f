# ==============================================================================
# app/engine/forecast.py
# ------------------------------------------------------------------------------
# Next-month point forecast from two monthly totals: partial-month
# normalization of the more recent total, then two-point linear trend
# (Holt) smoothing.
# ==============================================================================

import logging
import math
from dataclasses import dataclass
from datetime import date
import pandas as pd
from .periods import add_months, elapsed_units, month_start
from .settings import CalculationConfig
from .snapshot import prepare_revenue


@dataclass(frozen=True)
class ForecastResult:
    forecast: int
    estimated_prior: float
    is_partial: bool
    trend_percent: float


def round_half_up(value):
    return int(math.floor(value + 0.5))


def holt_forecast(series, alpha, beta, growth_clamp_pct=0.0):
    """
    One-step-ahead forecast with linear trend smoothing.

    Level starts at the first value and trend at the first difference. With a
    positive `growth_clamp_pct` the trend is held within +/- that share of the
    level after every step. The result is rounded and never negative.
    """
    values = [float(v) for v in series]
    if not values:
        return 0
    if len(values) == 1:
        return max(0, round_half_up(values[0]))

    level = values[0]
    trend = values[1] - values[0]
    for y in values[1:]:
        prev_level = level
        level = alpha * y + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
        if growth_clamp_pct:
            limit = abs(level) * growth_clamp_pct
            trend = max(-limit, min(limit, trend))

    return max(0, round_half_up(level + trend))


def calculate_forecast(target_month, prev2_raw, prev1_raw, config=None, today=None):
    """
    Forecasts the month starting at `target_month` from the totals of the two
    months before it.

    Args:
        target_month (date): Any day of the month being planned.
        prev2_raw (float): Total of two months before (always closed).
        prev1_raw (float): Total of the month before; may still be running.
        config (CalculationConfig): Smoothing constants.
        today (date): "Now", only used to tell whether the prior month is still open.

    Returns:
        ForecastResult
    """
    config = config or CalculationConfig()
    today = today or date.today()
    prior_month = add_months(month_start(target_month), -1)

    estimated_prior = float(prev1_raw)
    is_partial = False
    units = elapsed_units(prior_month, today)
    if units is not None:
        elapsed, total = units
        if elapsed < total:
            estimated_prior = float(round_half_up(prev1_raw / elapsed * total))
            is_partial = True

    forecast = holt_forecast([prev2_raw, estimated_prior],
                             config.HOLT_ALPHA, config.HOLT_BETA, config.TREND_CLAMP_PCT)
    trend = (forecast - estimated_prior) / estimated_prior * 100 if estimated_prior else 0.0
    return ForecastResult(forecast, estimated_prior, is_partial, trend)


def forecast_companies(target_month, revenue, config=None, today=None):
    """
    Turnover forecast for every configured company plus totals, as shown on
    the KPI overview.
    """
    config = config or CalculationConfig()
    today = today or date.today()
    target_month = month_start(target_month)
    prev1_month = add_months(target_month, -1)
    prev2_month = add_months(target_month, -2)

    frame = prepare_revenue(revenue, config.COMPANY_CODES)
    sums = dict(frame.groupby(['company_code', 'month'])['turnover'].sum().items())

    companies = {}
    totals = {'prev2': 0.0, 'prev1': 0.0, 'forecast': 0}
    any_partial = False
    for code in config.COMPANY_CODES:
        prev2 = float(sums.get((code, pd.Timestamp(prev2_month)), 0.0))
        prev1 = float(sums.get((code, pd.Timestamp(prev1_month)), 0.0))
        result = calculate_forecast(target_month, prev2, prev1, config, today)
        companies[code] = {
            'prev2': prev2,
            'prev1_raw': prev1,
            'prev1_estimated': result.estimated_prior,
            'is_partial': result.is_partial,
            'forecast': result.forecast,
            'trend_percent': round(result.trend_percent, 1),
        }
        totals['prev2'] += prev2
        totals['prev1'] += result.estimated_prior
        totals['forecast'] += result.forecast
        any_partial = any_partial or result.is_partial

    logging.info(f"Forecast for {target_month:%Y-%m}: {totals['forecast']:,} across {len(companies)} companies.")
    return {'month': target_month.isoformat(), 'companies': companies,
            'totals': totals, 'is_any_partial': any_partial}
