# ==============================================================================
# app/main/utils.py
# ------------------------------------------------------------------------------
# Turns engine results (plan rows, pay breakdowns) into JSON-ready dicts.
# ==============================================================================

from dataclasses import asdict


def _iso(value):
    return value.isoformat() if value is not None else None

def plan_row_to_dict(row, row_id=None):
    key, targets = row.key, row.targets
    return {
        'id': row_id,
        'identity': key.identity,
        'month': _iso(key.month_start),
        'entity_type': key.entity_type,
        'company_code': key.company_code,
        'operator_id': key.operator_id,
        'role_code': key.role_code,
        'turnover_target_month': targets.turnover_month,
        'turnover_target_week': targets.turnover_week,
        'shifts_target_month': targets.shifts_month,
        'shifts_target_week': targets.shifts_week,
        'meta': targets.meta,
        'is_locked': row.locked,
    }

def window_to_dict(window):
    return {'start': _iso(window.start), 'end': _iso(window.end), 'kind': window.kind}

def pay_to_dict(pay, label=None):
    """Pay breakdown with the derived figures the dashboard shows next to it."""
    data = asdict(pay)
    data['window'] = window_to_dict(pay.window)
    data['label'] = label
    data['pay_with_bonuses'] = pay.pay_with_bonuses
    data['net_penalty'] = pay.net_penalty
    return data

def summarize_payroll(payroll):
    """Totals over a payroll listing, plus the operators with the largest net penalty first."""
    flagged = sorted((pay for pay in payroll if pay.net_penalty > 0),
                     key=lambda pay: pay.net_penalty, reverse=True)
    return {
        'operators': len(payroll),
        'shifts': sum(pay.shifts for pay in payroll),
        'turnover': sum(pay.period_turnover for pay in payroll),
        'payable': sum(pay.payable for pay in payroll),
        'net_penalty': sum(pay.net_penalty for pay in payroll),
        'penalized': [pay.operator_id for pay in flagged],
    }
