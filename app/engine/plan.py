# ==============================================================================
# app/engine/plan.py
# ------------------------------------------------------------------------------
# Plan row types. A row is either Generated (freshly computed, replaceable) or
# Locked (manually edited, must survive regeneration verbatim); the merge
# between two generations only ever looks at that tag.
# ==============================================================================

from collections import namedtuple
from dataclasses import dataclass, field


class PlanKey(namedtuple('PlanKey', ['month_start', 'entity_type', 'company_code', 'operator_id', 'role_code'])):
    """Identity key of a plan row. Unique within one plan generation."""
    __slots__ = ()

    @classmethod
    def collective(cls, month, company_code):
        return cls(month, 'collective', company_code, None, None)

    @classmethod
    def operator(cls, month, company_code, operator_id):
        return cls(month, 'operator', company_code, operator_id, None)

    @classmethod
    def role(cls, month, role_code):
        return cls(month, 'role', None, None, role_code)

    @property
    def identity(self):
        parts = [self.month_start.isoformat(), self.entity_type,
                 self.company_code, self.operator_id, self.role_code]
        return '|'.join('' if part is None else str(part) for part in parts)


@dataclass(frozen=True)
class PlanTargets:
    turnover_month: float = 0
    turnover_week: float = 0
    shifts_month: float = 0
    shifts_week: float = 0
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Generated:
    key: PlanKey
    targets: PlanTargets
    locked = False

    def lock(self):
        return Locked(self.key, self.targets)


@dataclass(frozen=True)
class Locked:
    key: PlanKey
    targets: PlanTargets
    locked = True

    def unlock(self):
        return Generated(self.key, self.targets)


def merge_locked(fresh, previous):
    """
    Merges a fresh generation with the previous one: every Locked row of the
    previous generation replaces the fresh row with the same key (or is kept
    if the fresh generation has no such key). Everything else comes from
    `fresh`. Whole rows are replaced, fields are never mixed.
    """
    locked = {row.key: row for row in previous if isinstance(row, Locked)}
    merged = [locked.pop(row.key, row) for row in fresh]
    merged.extend(locked.values())
    return merged


def operator_turnover_target(rows, operator_id, month):
    """Sum of the operator's monthly turnover targets across companies; None when there is no plan."""
    targets = [
        row.targets.turnover_month for row in rows
        if row.key.entity_type == 'operator'
        and row.key.operator_id == operator_id
        and row.key.month_start == month
    ]
    return sum(targets) if targets else None

def role_turnover_target(rows, role_code, month):
    for row in rows:
        if row.key.entity_type == 'role' and row.key.role_code == role_code and row.key.month_start == month:
            return row.targets.turnover_month
    return None
