# ==============================================================================
# app/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# Revenue, operators, salary rules and ledgers are written by the surrounding
# dashboard; the engine only reads them. KpiPlan rows are written by the engine.
# ==============================================================================

from datetime import datetime
from app import db
import json

class Company(db.Model):
    """A venue. `code` is what salary rules and plan rows refer to."""
    __tablename__ = 'company'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), unique=True, index=True)

    def __repr__(self):
        return f'<Company {self.id}: {self.code}>'

class Operator(db.Model):
    __tablename__ = 'operator'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    short_name = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    @property
    def label(self):
        return self.short_name or self.name

    def __repr__(self):
        return f'<Operator {self.id}: {self.name}>'

class Income(db.Model):
    """
    One revenue record. Immutable once recorded; turnover is the sum of the
    channel amounts.
    """
    __tablename__ = 'income'
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey('company.id'), nullable=False, index=True)
    operator_id = db.Column(db.Integer, db.ForeignKey('operator.id'), nullable=True, index=True)
    shift = db.Column(db.String(8), default='day')  # day|night
    cash_amount = db.Column(db.Float, default=0)
    kaspi_amount = db.Column(db.Float, default=0)  # wallet / mobile payments
    card_amount = db.Column(db.Float, default=0)
    online_amount = db.Column(db.Float, default=0)
    comment = db.Column(db.String(256))

    company = db.relationship('Company')
    operator = db.relationship('Operator')

    def __repr__(self):
        return f'<Income {self.id}: {self.date} {self.shift}>'

class SalaryRule(db.Model):
    """
    Per-shift pay rule for one (company code, shift type). At most one active
    rule may exist per key; see app.engine.store.save_salary_rule.
    """
    __tablename__ = 'salary_rule'
    id = db.Column(db.Integer, primary_key=True)
    company_code = db.Column(db.String(32), nullable=False, index=True)
    shift_type = db.Column(db.String(8), nullable=False)
    base_per_shift = db.Column(db.Float)  # None falls back to DEFAULT_BASE_PER_SHIFT
    threshold1_turnover = db.Column(db.Float)
    threshold1_bonus = db.Column(db.Float)
    threshold2_turnover = db.Column(db.Float)
    threshold2_bonus = db.Column(db.Float)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f'<SalaryRule {self.id}: {self.company_code}/{self.shift_type}>'

class SalaryAdjustment(db.Model):
    """
    Manual ledger entry. Amounts are positive magnitudes; `kind` decides the
    sign (bonus adds, fine/debt/advance subtract).
    """
    __tablename__ = 'salary_adjustment'
    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, db.ForeignKey('operator.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    kind = db.Column(db.String(16), nullable=False)  # bonus|fine|debt|advance
    comment = db.Column(db.String(256))

    def __repr__(self):
        return f'<SalaryAdjustment {self.id}: {self.kind} {self.amount}>'

class WeeklyDebt(db.Model):
    """Automatic debt booked against an operator's week (e.g. goods taken on credit)."""
    __tablename__ = 'weekly_debt'
    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, db.ForeignKey('operator.id'), nullable=False, index=True)
    week_start = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(16), default='active')  # active|closed
    comment = db.Column(db.String(256))

    def __repr__(self):
        return f'<WeeklyDebt {self.id}: {self.week_start} {self.amount}>'

class KpiPlan(db.Model):
    """
    A persisted plan row. `identity` is the string form of the identity key
    (month, entity type, company, operator, role) and is unique.
    """
    __tablename__ = 'kpi_plan'
    id = db.Column(db.Integer, primary_key=True)
    identity = db.Column(db.String(160), unique=True, nullable=False, index=True)
    period_start = db.Column(db.Date, nullable=False, index=True)
    entity_type = db.Column(db.String(16), nullable=False)  # collective|operator|role
    company_code = db.Column(db.String(32))
    operator_id = db.Column(db.Integer, db.ForeignKey('operator.id'))
    role_code = db.Column(db.String(32))

    turnover_target_month = db.Column(db.Integer, default=0)
    turnover_target_week = db.Column(db.Integer, default=0)
    shifts_target_month = db.Column(db.Integer, default=0)
    shifts_target_week = db.Column(db.Float, default=0)

    meta_json = db.Column(db.Text, nullable=True)
    is_locked = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_meta(self):
        return json.loads(self.meta_json) if self.meta_json else {}

    def __repr__(self):
        return f'<KpiPlan {self.id}: {self.identity}{" (locked)" if self.is_locked else ""}>'


class AppSetting(db.Model):
    """
    Stores key-value pairs for the engine settings (rates, thresholds,
    smoothing constants) so they are configurable without a deploy.
    """
    __tablename__ = 'app_setting'
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.String(512), nullable=False)
    description = db.Column(db.String(512))
    value_type = db.Column(db.String(32), default='string') # e.g., 'float', 'int', 'string', 'json'

    def __repr__(self):
        return f'<AppSetting {self.key}: {self.value}>'

    def get_value(self):
        """Casts the string value to its correct Python type."""
        if self.value_type == 'float':
            return float(self.value)
        if self.value_type == 'int':
            return int(self.value)
        if self.value_type == 'json':
            return json.loads(self.value)
        return self.value
