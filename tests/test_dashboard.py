from datetime import datetime, timedelta

import pytest

from models import db, Sale, Unit


@pytest.fixture
def seeded(app, client, admin_headers, make_customer):
    """Two products bought in via the API, one sale, one indebted customer."""
    with app.app_context():
        pcs = Unit.query.filter_by(value='pcs').first().id
    tea = client.post('/api/products', headers=admin_headers, json={
        'name': 'Tea', 'qty': 20, 'original_price': 2, 'sale_price': 4, 'unit_id': pcs}).get_json()['data']['id']
    cup = client.post('/api/products', headers=admin_headers, json={
        'name': 'Cup', 'qty': 3, 'original_price': 1, 'sale_price': 6, 'unit_id': pcs}).get_json()['data']['id']
    cid = make_customer('Owes', underpaid='12.5')
    client.post('/api/sales', headers=admin_headers, json={
        'items': [{'product_id': tea, 'qty': 5}, {'product_id': cup, 'qty': 1}], 'paid_amount': 26})
    return {'tea': tea, 'cup': cup, 'customer': cid}


def test_stats(client, admin_headers, seeded):
    data = client.get('/api/dashboard/stats', headers=admin_headers).get_json()['data']

    assert data['total_revenue'] == 26
    assert data['total_cost'] == 43
    assert data['profit'] == -17
    assert data['total_products'] == 2
    assert data['total_customers'] == 1
    assert data['total_underpaid'] == 12.5
    assert data['net_balance'] == -12.5


def test_stats_date_range_excludes_other_days(client, admin_headers, seeded):
    tomorrow = (datetime.utcnow() + timedelta(days=1)).strftime('%Y-%m-%d')
    data = client.get(f'/api/dashboard/stats?start_date={tomorrow}', headers=admin_headers).get_json()['data']

    assert data['total_revenue'] == 0
    assert data['total_cost'] == 0


def test_top_products_ranked_by_revenue(client, admin_headers, seeded):
    data = client.get('/api/dashboard/top-products?limit=1', headers=admin_headers).get_json()['data']

    assert len(data) == 1
    assert data[0]['product_name'] == 'Tea'
    assert data[0]['total_qty_sold'] == 5
    assert data[0]['total_revenue'] == 20
    assert data[0]['sale_count'] == 1


def test_trends_group_by_period(app, client, admin_headers, seeded):
    with app.app_context():
        sale = Sale.query.first()
        sale.sale_date = datetime(2023, 5, 17, 10, 0, 0)
        db.session.commit()

    by_month = client.get('/api/dashboard/sales-trend?group_by=month', headers=admin_headers).get_json()['data']
    assert by_month == [{'period': '2023-05', 'sale_count': 1, 'total_revenue': 26}]

    by_year = client.get('/api/dashboard/sales-trend?group_by=year', headers=admin_headers).get_json()['data']
    assert by_year[0]['period'] == '2023'

    purchases = client.get('/api/dashboard/purchase-trend', headers=admin_headers).get_json()['data']
    assert len(purchases) == 1
    assert purchases[0]['purchase_count'] == 2
    assert purchases[0]['total_cost'] == 43


def test_low_stock(client, admin_headers, seeded):
    data = client.get('/api/dashboard/low-stock', headers=admin_headers).get_json()['data']
    assert [(p['name'], p['qty']) for p in data] == [('Cup', 2)]

    wider = client.get('/api/dashboard/low-stock?threshold=100', headers=admin_headers).get_json()['data']
    assert [p['name'] for p in wider] == ['Cup', 'Tea']


def test_dashboard_needs_dashboard_permission(client, make_user):
    _, headers = make_user('clerk', ['sales'])

    assert client.get('/api/dashboard/stats', headers=headers).status_code == 403
