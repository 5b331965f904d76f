# ==============================================================================
# app/engine/schema.py
# ------------------------------------------------------------------------------
# Defines the expected structure of the snapshots handed to the engine.
# This schema is the single source of truth for the validator.
# ==============================================================================

CHANNEL_COLUMNS = ['cash_amount', 'kaspi_amount', 'card_amount', 'online_amount']

EXPECTED_FRAMES = {
    'revenue': {
        'required_columns': ['date', 'company_code', 'operator_id', 'shift'],
        'optional_columns': CHANNEL_COLUMNS,
        'numeric_columns': CHANNEL_COLUMNS
    },
    'salary_rules': {
        'required_columns': ['company_code', 'shift_type', 'base_per_shift'],
        'optional_columns': [
            'threshold1_turnover', 'threshold1_bonus',
            'threshold2_turnover', 'threshold2_bonus', 'is_active'
        ],
        'numeric_columns': [
            'base_per_shift', 'threshold1_turnover', 'threshold1_bonus',
            'threshold2_turnover', 'threshold2_bonus'
        ]
    },
    'adjustments': {
        'required_columns': ['operator_id', 'date', 'amount', 'kind'],
        'optional_columns': ['comment'],
        'numeric_columns': ['amount']
    },
    'weekly_debts': {
        'required_columns': ['operator_id', 'week_start', 'amount', 'status'],
        'optional_columns': ['comment'],
        'numeric_columns': ['amount']
    }
}

ADJUSTMENT_KINDS = ('bonus', 'fine', 'debt', 'advance')
SHIFT_TYPES = ('day', 'night')
PLAN_ENTITY_TYPES = ('collective', 'operator', 'role')
