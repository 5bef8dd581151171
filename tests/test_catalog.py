from models import db, ActivityLog, Sale, Unit


def unit_id(app, value='pcs'):
    with app.app_context():
        return Unit.query.filter_by(value=value).first().id


def new_product(client, headers, app, **overrides):
    body = {'name': 'Hammer', 'qty': 10, 'original_price': 3, 'sale_price': 5, 'unit_id': unit_id(app)}
    body.update(overrides)
    return client.post('/api/products', json=body, headers=headers)


def test_default_units_are_seeded(client, make_user):
    _, headers = make_user('viewer', [])
    values = {u['value'] for u in client.get('/api/units', headers=headers).get_json()['data']}

    assert values == {'kg', 'g', 't', 'L', 'mL', 'pcs', 'btl', 'box', 'pack', 'dz'}


def test_product_create_records_initial_stock(app, client, admin_headers):
    resp = new_product(client, admin_headers, app, description='claw')

    assert resp.status_code == 201
    product = resp.get_json()['data']
    assert product['unit_value'] == 'pcs'
    assert product['qty'] == 10

    history = client.get(f"/api/purchase-history/product/{product['id']}", headers=admin_headers).get_json()['data']
    assert len(history) == 1
    assert history[0]['notes'] == 'Initial stock'
    assert history[0]['total_amount'] == 30
    assert history[0]['current_product_name'] == 'Hammer'
    assert history[0]['unit_value'] == 'pcs'


def test_product_create_rejects_duplicates_and_bad_units(app, client, admin_headers):
    new_product(client, admin_headers, app)

    dup = new_product(client, admin_headers, app, name='hammer')
    assert dup.status_code == 400
    assert dup.get_json()['error'] == 'A product with this name already exists'

    assert new_product(client, admin_headers, app, name='Saw', unit_id=9999).status_code == 400
    assert new_product(client, admin_headers, app, name='Saw', qty=0).status_code == 400
    assert new_product(client, admin_headers, app, name='Saw', sale_price=-1).status_code == 400


def test_product_update_does_not_touch_qty(app, client, admin_headers):
    pid = new_product(client, admin_headers, app).get_json()['data']['id']

    resp = client.put(f'/api/products/{pid}', headers=admin_headers, json={
        'name': 'Big Hammer', 'qty': 500, 'original_price': 4, 'sale_price': 8, 'unit_id': unit_id(app, 'box'),
    })

    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert (data['name'], data['qty'], data['sale_price'], data['unit_value']) == ('Big Hammer', 10, 8, 'box')
    assert client.put('/api/products/999', headers=admin_headers, json={}).status_code == 404


def test_add_quantity_appends_purchase_history(app, client, admin_headers, make_product):
    empty = make_product('Empty', qty=0)

    first = client.post(f'/api/products/{empty}/add-quantity', json={'qty': 4}, headers=admin_headers)
    assert first.status_code == 200
    assert first.get_json()['data']['qty'] == 4
    second = client.post(f'/api/products/{empty}/add-quantity', json={'qty': 2, 'notes': 'restock'},
                         headers=admin_headers)
    assert second.get_json()['data']['qty'] == 6
    third = client.post(f'/api/products/{empty}/add-quantity', json={'qty': 1}, headers=admin_headers)
    assert third.status_code == 200

    history = client.get(f'/api/purchase-history?product_id={empty}', headers=admin_headers).get_json()['data']
    assert sorted(h['notes'] for h in history) == ['Initial stock', 'Stock addition', 'restock']
    assert all(h['price'] == 0 for h in history)

    bad = client.post(f'/api/products/{empty}/add-quantity', json={'qty': 0}, headers=admin_headers)
    assert bad.status_code == 400
    assert client.post('/api/products/999/add-quantity', json={'qty': 1}, headers=admin_headers).status_code == 404


def test_sold_product_cannot_be_deleted(app, client, admin_headers, make_product):
    sold = make_product('Sold', qty=5)
    unsold = make_product('Unsold', qty=5)
    client.post('/api/sales', json={'items': [{'product_id': sold, 'qty': 1}], 'paid_amount': 5},
                headers=admin_headers)

    assert client.delete(f'/api/products/{sold}', headers=admin_headers).status_code == 400
    assert client.delete(f'/api/products/{unsold}', headers=admin_headers).status_code == 200
    assert client.get(f'/api/products/{unsold}', headers=admin_headers).status_code == 404


def test_unit_crud_rules(app, client, admin_headers, make_product, make_user):
    created = client.post('/api/units', json={'value': 'crate'}, headers=admin_headers)
    assert created.status_code == 201
    uid = created.get_json()['data']['id']

    assert client.post('/api/units', json={'value': 'CRATE'}, headers=admin_headers).status_code == 400
    assert client.post('/api/units', json={'value': ''}, headers=admin_headers).status_code == 400
    assert client.put(f'/api/units/{uid}', json={'value': 'kg'}, headers=admin_headers).status_code == 400
    assert client.put(f'/api/units/{uid}', json={'value': 'crates'}, headers=admin_headers).status_code == 200

    make_product('Melon', unit='crates')
    in_use = client.delete(f'/api/units/{uid}', headers=admin_headers)
    assert in_use.status_code == 400
    assert in_use.get_json()['error'] == 'Cannot delete unit that is being used by products'

    spare = unit_id(app, 'dz')
    assert client.delete(f'/api/units/{spare}', headers=admin_headers).status_code == 200

    _, clerk = make_user('clerk', ['products'])
    assert client.post('/api/units', json={'value': 'sack'}, headers=clerk).status_code == 403


def test_customer_crud_and_sale_detachment(app, client, admin_headers, make_product):
    created = client.post('/api/customers', json={'name': 'Dana', 'phone': '555'}, headers=admin_headers)
    assert created.status_code == 201
    cid = created.get_json()['data']['id']
    assert created.get_json()['data']['overpaid_amount'] == 0

    assert client.post('/api/customers', json={'name': 'dana'}, headers=admin_headers).status_code == 400
    assert client.post('/api/customers', json={}, headers=admin_headers).status_code == 400

    updated = client.put(f'/api/customers/{cid}', json={'name': 'Dana K', 'address': 'Main St'},
                         headers=admin_headers)
    assert updated.get_json()['data']['address'] == 'Main St'

    pid = make_product(qty=2)
    sale = client.post('/api/sales', json={'items': [{'product_id': pid, 'qty': 1}], 'paid_amount': 5,
                                           'customer_id': cid}, headers=admin_headers).get_json()['data']

    assert client.delete(f'/api/customers/{cid}', headers=admin_headers).status_code == 200
    assert client.get(f'/api/customers/{cid}', headers=admin_headers).status_code == 404
    with app.app_context():
        kept = db.session.get(Sale, sale['id'])
        assert kept.customer_id is None
        assert kept.customer_name == 'Dana K'


def test_catalog_mutations_are_audited(app, client, admin_headers):
    new_product(client, admin_headers, app)
    client.post('/api/customers', json={'name': 'Eve'}, headers=admin_headers)

    with app.app_context():
        rows = {(r.table_name, r.action, r.status) for r in ActivityLog.query.all()}
    assert ('products', 'CREATE', 'success') in rows
    assert ('customers', 'CREATE', 'success') in rows
