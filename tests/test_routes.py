# tests/test_routes.py

from datetime import date

import pytest


@pytest.fixture
def data(clean_db):
    from app.models import AppSetting, Company, Income, Operator
    from app.seed import seed_data

    db = clean_db
    seed_data()
    arena = Company.query.filter_by(code='arena').first()
    amy = Operator(name='Amy Adams', short_name='Amy')
    db.session.add(amy)
    db.session.flush()
    db.session.add_all([
        Income(date=date(2024, 1, 10), company_id=arena.id, operator_id=amy.id, shift='day', cash_amount=100_000),
        Income(date=date(2024, 2, 5), company_id=arena.id, operator_id=amy.id, shift='day', cash_amount=120_000),
        Income(date=date(2024, 3, 4), company_id=arena.id, operator_id=amy.id, shift='day', cash_amount=130_000),
    ])
    db.session.commit()
    settings = {s.key: s.id for s in AppSetting.query.all()}
    return {'amy': amy.id, 'settings': settings}


def _generate(client):
    response = client.post('/api/plans/2024-03/generate?today=2024-04-15')
    assert response.status_code == 200
    return response.get_json()


def test_forecast_overview(client, data):
    response = client.get('/api/forecast?month=2024-03&today=2024-04-15')
    assert response.status_code == 200
    body = response.get_json()
    assert body['companies']['arena']['forecast'] == 140_000
    assert body['totals']['forecast'] == 140_000


def test_generate_and_list_plan(client, data):
    body = _generate(client)
    # 3 collective + 1 personal + 2 roles
    assert len(body['rows']) == 6
    assert body['locked'] == 0

    listed = client.get('/api/plans/2024-03').get_json()
    assert [row['identity'] for row in listed['rows']] == [row['identity'] for row in body['rows']]


def test_edit_locks_row_and_unlock_clears_it(client, data):
    rows = _generate(client)['rows']
    row = next(r for r in rows if r['entity_type'] == 'operator')

    response = client.post(f"/api/plan-rows/{row['id']}", json={'turnover_month': 5_000})
    assert response.status_code == 200
    edited = response.get_json()
    assert edited['is_locked'] is True
    assert edited['turnover_target_month'] == 5_000
    assert edited['shifts_target_month'] == row['shifts_target_month']

    regenerated = _generate(client)
    assert regenerated['locked'] == 1
    kept = next(r for r in regenerated['rows'] if r['id'] == row['id'])
    assert kept['turnover_target_month'] == 5_000

    response = client.post(f"/api/plan-rows/{row['id']}/unlock")
    assert response.get_json()['is_locked'] is False


def test_edit_rejects_negative_targets(client, data):
    rows = _generate(client)['rows']
    response = client.post(f"/api/plan-rows/{rows[0]['id']}", json={'turnover_month': -1})
    assert response.status_code == 400
    assert 'turnover_month' in response.get_json()['fields']


def test_edit_salary_rule(client, data):
    from app.models import SalaryRule

    rule = SalaryRule.query.filter_by(company_code='arena', shift_type='day').first()
    payload = {'company_code': 'arena', 'shift_type': 'day', 'base_per_shift': 9_500,
               'threshold1_turnover': 120_000, 'threshold1_bonus': 2_500}
    response = client.post(f'/api/salary-rules/{rule.id}', json=payload)
    assert response.status_code == 200
    body = response.get_json()
    assert body['id'] == rule.id
    assert body['base_per_shift'] == 9_500 and body['is_active'] is True
    assert SalaryRule.query.filter_by(company_code='arena', shift_type='day').count() == 1

    # Moving it onto the active arena/night rule clashes.
    payload['shift_type'] = 'night'
    assert client.post(f'/api/salary-rules/{rule.id}', json=payload).status_code == 409
    assert client.post('/api/salary-rules/9999', json=payload).status_code == 404


def test_bad_month_and_unknown_ids(client, data):
    assert client.get('/api/plans/2024-13').status_code == 400
    assert client.get('/api/payroll/week?date=yesterday').status_code == 400
    assert client.post('/api/plan-rows/9999/unlock').status_code == 404
    assert client.get('/api/operators/9999/pay').status_code == 404
    assert client.get('/api/roles/janitor/pay').status_code == 404


def test_salary_rule_conflict_returns_409(client, data):
    payload = {'company_code': 'arena', 'shift_type': 'day', 'base_per_shift': 9_000}
    response = client.post('/api/salary-rules', json=payload)
    assert response.status_code == 409
    assert response.get_json()['details']

    response = client.post('/api/salary-rules', json={'company_code': 'bar', 'shift_type': 'day'})
    assert response.status_code == 201

    response = client.post('/api/salary-rules', json={'company_code': 'bar', 'shift_type': 'evening'})
    assert response.status_code == 400


def test_edit_setting_validates_type(client, data):
    setting_id = data['settings']['GROUP_BONUS_WEEKLY_THRESHOLDS']
    response = client.post(f'/api/settings/{setting_id}', json={'value': '{"arena": 150000'})
    assert response.status_code == 400

    response = client.post(f'/api/settings/{setting_id}', json={'value': '{"arena": 150000}'})
    assert response.status_code == 200

    alpha_id = data['settings']['HOLT_ALPHA']
    assert client.post(f'/api/settings/{alpha_id}', json={'value': 'fast'}).status_code == 400
    assert client.post(f'/api/settings/{alpha_id}', json={'value': '0.5'}).status_code == 200


def test_operator_pay_report(client, data):
    _generate(client)
    response = client.get(f"/api/operators/{data['amy']}/pay?date=2024-03-06")
    assert response.status_code == 200
    body = response.get_json()
    assert body['label'] == 'Amy'
    assert body['week']['window'] == {'start': '2024-03-04', 'end': '2024-03-10', 'kind': 'week'}
    # Seeded arena/day rule: base 8,000 and tier 1 at 120,000
    assert body['week']['payable'] == 10_000
    assert body['month']['kpi_target'] == 140_000
    assert body['month']['kpi_bonus'] == 0


def test_weekly_payroll_and_role_pay(client, data):
    body = client.get('/api/payroll/week?date=2024-03-06').get_json()
    assert body['summary']['operators'] == 1
    assert body['operators'][0]['label'] == 'Amy'

    _generate(client)
    body = client.get('/api/roles/supervisor/pay?month=2024-03').get_json()
    assert body['role_target'] == 140_000
    assert body['global_turnover'] == 130_000
    assert body['payable'] == 300_000
