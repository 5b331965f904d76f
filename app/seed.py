import json
from app import db
from app.models import AppSetting, Company, SalaryRule
from app.engine.settings import DEFAULT_SETTINGS

DEFAULT_COMPANIES = [
    # (code, name)
    ('arena', 'Arena'),
    ('ramen', 'Ramen'),
    ('extra', 'Extra'),
]

DEFAULT_SALARY_RULES = [
    # (company_code, shift_type, base_per_shift, tier1 turnover, tier1 bonus, tier2 turnover, tier2 bonus)
    ('arena', 'day', 8000, 120000, 2000, 160000, 2000),
    ('arena', 'night', 8000, 120000, 2000, 160000, 2000),
    ('ramen', 'day', 8000, 120000, 2000, 160000, 2000),
    ('ramen', 'night', 8000, 120000, 2000, 160000, 2000),
    ('extra', 'day', 8000, 120000, 2000, 160000, 2000),
    ('extra', 'night', 8000, 120000, 2000, 160000, 2000),
]

def _stored_value(value, value_type):
    return json.dumps(value, ensure_ascii=False) if value_type == 'json' else str(value)

def seed_data():
    """Populates the database with default settings, companies and salary rules."""
    # Seed App Settings
    for key, (value, description, value_type) in DEFAULT_SETTINGS.items():
        setting = AppSetting.query.filter_by(key=key).first()
        if not setting: # Only add if it doesn't exist
            setting = AppSetting(key=key, value=_stored_value(value, value_type),
                                 description=description, value_type=value_type)
            db.session.add(setting)
            print(f'Seeding setting: {key}')

    # Seed Companies
    for code, name in DEFAULT_COMPANIES:
        if not Company.query.filter_by(code=code).first():
            db.session.add(Company(code=code, name=name))
            print(f'Seeding company: {code}')

    # Seed Salary Rules
    if SalaryRule.query.count() == 0:
        print('Seeding default salary rules...')
        for code, shift, base, t1, b1, t2, b2 in DEFAULT_SALARY_RULES:
            rule = SalaryRule(
                company_code=code, shift_type=shift, base_per_shift=base,
                threshold1_turnover=t1, threshold1_bonus=b1,
                threshold2_turnover=t2, threshold2_bonus=b2, is_active=True
            )
            db.session.add(rule)

    db.session.commit()
    print('Seeding complete.')
