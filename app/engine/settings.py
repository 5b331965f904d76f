# ==============================================================================
# app/engine/settings.py
# ------------------------------------------------------------------------------
# The engine's configuration object. Built from the AppSetting table (or from
# keyword overrides in tests) and passed explicitly into the forecaster, the
# allocator and the compensation calculator.
# ==============================================================================

import copy
import logging

# key: (default, description, value_type)
DEFAULT_SETTINGS = {
    'HOLT_ALPHA': (0.6, 'Level smoothing constant of the two-point forecast', 'float'),
    'HOLT_BETA': (0.2, 'Trend smoothing constant of the two-point forecast', 'float'),
    'TREND_CLAMP_PCT': (0.0, 'Clamp the trend to +/- this share of the level after each step (0 disables)', 'float'),
    'WEEKS_PER_MONTH': (4.345, 'Average number of weeks in a month, used for weekly targets', 'float'),
    'MIN_OPERATOR_CONTRIBUTION': (1000.0, 'Operators with a smaller weighted turnover get no personal plan', 'float'),
    'COMPANY_CODES': (['arena', 'ramen', 'extra'], 'Companies taking part in planning and pay (JSON)', 'json'),
    'MANAGEMENT_ROLES': (['supervisor', 'marketing'], 'Roles that share the global monthly target (JSON)', 'json'),
    'DEFAULT_BASE_PER_SHIFT': (8000.0, 'Base pay per shift when no active salary rule matches', 'float'),
    'KPI_BONUS_RATE': (0.1, 'Share of monthly pay added when the monthly target is hit', 'float'),
    'GROUP_BONUS_WEEKLY_THRESHOLDS': ({}, 'Weekly company turnover that unlocks the group bonus, per company code (JSON)', 'json'),
    'GROUP_BONUS_PER_SHIFT': (0.0, 'Flat group bonus added to every shift of a qualifying company week', 'float'),
    'ROLE_FIXED_SALARIES': ({'supervisor': 300000, 'marketing': 250000}, 'Fixed monthly salary per management role (JSON)', 'json'),
}


class CalculationConfig:
    """
    Holds all business rules used by the engine. Every attribute defaults to
    DEFAULT_SETTINGS and can be overridden by keyword.
    """

    def __init__(self, **overrides):
        unknown = sorted(set(overrides) - set(DEFAULT_SETTINGS))
        if unknown:
            raise TypeError(f"Unknown calculation settings: {', '.join(unknown)}")
        for key, (default, _, _) in DEFAULT_SETTINGS.items():
            setattr(self, key, overrides.get(key, copy.deepcopy(default)))

    @classmethod
    def from_settings(cls):
        """Loads the settings stored in the AppSetting table; missing keys keep their defaults."""
        from app.models import AppSetting
        stored = {}
        for setting in AppSetting.query.all():
            if setting.key not in DEFAULT_SETTINGS:
                continue
            try:
                stored[setting.key] = setting.get_value()
            except ValueError as e:
                logging.warning(f"Ignoring malformed setting {setting.key}={setting.value!r}: {e}")
        logging.debug(f"Loaded {len(stored)} calculation settings from the database.")
        return cls(**stored)

    def group_bonus_threshold(self, company_code):
        threshold = (self.GROUP_BONUS_WEEKLY_THRESHOLDS or {}).get(company_code) or 0
        return float(threshold) if self.GROUP_BONUS_PER_SHIFT > 0 else 0.0

    def as_dict(self):
        return {key: getattr(self, key) for key in DEFAULT_SETTINGS}

    def __repr__(self):
        return f'<CalculationConfig {self.as_dict()}>'
