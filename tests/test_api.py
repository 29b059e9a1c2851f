import csv
import io

import openpyxl
import pytest
from fastapi.testclient import TestClient

from crm_console.api.main import app
from crm_console.api.state import get_services


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def session(services):
    return services.sessions.create_session('u1', 'admin@example.com', name='Admin User')


@pytest.fixture
def auth(session):
    return {"Authorization": f"Bearer {session.jti}"}


def _product(client, **fields):
    payload = {'name': 'Widget', 'base_price': 100, **fields}
    response = client.post('/api/crm/products', json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ===== SYSTEM =====

def test_root(client):
    assert client.get('/').json() == {"status": "online", "message": "CRM Console API Active"}


def test_system_status_counts(client):
    _product(client)
    counts = client.get('/system/status').json()['counts']
    assert counts['products'] == 1
    assert counts['invoices'] == 0


# ===== PRODUCTS =====

def test_product_crud(client):
    created = _product(client, name='Licence', cost=40, sku='LIC')
    assert created['margin'] == 60.0
    assert created['margin_bucket'] == 'excellent'

    pid = created['id']
    assert client.get(f'/api/crm/products/{pid}').json()['sku'] == 'LIC'

    updated = client.put(f'/api/crm/products/{pid}', json={'base_price': 50})
    assert updated.status_code == 200
    assert updated.json()['base_price'] == 50.0
    assert updated.json()['sku'] == 'LIC'

    assert client.delete(f'/api/crm/products/{pid}').json()['success'] is True
    assert client.get(f'/api/crm/products/{pid}').status_code == 404


def test_product_validation_maps_to_400(client):
    response = client.post('/api/crm/products', json={'name': 'Bad', 'base_price': -1})
    assert response.status_code == 400
    assert response.json()['detail'] == {'errors': ['base_price must not be negative']}


def test_product_list_filters(client):
    _product(client, name='Alpha', category='Tools')
    _product(client, name='Beta', category='Tools', is_active=False)

    names = [p['name'] for p in client.get('/api/crm/products', params={'is_active': 'true'}).json()]
    assert names == ['Alpha']
    # Anything but "true" selects inactive products; no value means no filter
    inactive = [p['name'] for p in client.get('/api/crm/products', params={'is_active': 'maybe'}).json()]
    assert inactive == ['Beta']
    assert len(client.get('/api/crm/products').json()) == 2


# ===== BUNDLES & DISCOUNTS =====

def test_bundle_routes_win_over_product_id(client):
    a = _product(client, name='A', cost=30)
    response = client.post('/api/crm/products/bundles', json={
        'name': 'Kit', 'bundle_price': 150, 'items': [{'product_id': a['id'], 'quantity': 2}],
    })
    assert response.status_code == 201
    bundle = response.json()

    assert [b['name'] for b in client.get('/api/crm/products/bundles').json()] == ['Kit']
    breakdown = client.get(f"/api/crm/products/bundles/{bundle['id']}/breakdown").json()
    assert breakdown['list_value'] == 200.0
    assert breakdown['savings'] == 50.0
    assert breakdown['margin'] == 90.0


def test_discount_create_validate_and_redeem(client):
    response = client.post('/api/crm/products/discounts', json={
        'name': 'Welcome', 'code': 'welcome', 'value': 10, 'usage_limit': 1,
    })
    assert response.status_code == 201
    discount = response.json()
    assert discount['code'] == 'WELCOME'

    check = client.post('/api/crm/products/discounts/validate', json={'name': 'Dup', 'code': 'WELCOME', 'value': 5})
    assert check.json()['valid'] is True
    assert "Code 'WELCOME' is also used by 'Welcome'" in check.json()['warnings']

    bad = client.post('/api/crm/products/discounts/validate', json={'name': 'Bad', 'value': 500})
    assert bad.json()['valid'] is False

    assert client.post(f"/api/crm/products/discounts/{discount['id']}/redeem").json()['usage_count'] == 1
    exhausted = client.post(f"/api/crm/products/discounts/{discount['id']}/redeem")
    assert exhausted.status_code == 400


# ===== QUOTES =====

def test_quote_calculation(client):
    product = _product(client, name='Seat', base_price=100, tax_rate=10)
    client.post('/api/crm/products/discounts', json={'name': 'Ten', 'value': 10})

    response = client.post('/api/crm/quotes/calculate', json={
        'items': {product['id']: 2}, 'request_date': '2026-06-01',
    })

    assert response.status_code == 200
    body = response.json()
    assert body['subtotal'] == 200.0
    assert body['tax_total'] == 20.0
    assert body['order_discount'] == 20.0
    assert body['total'] == 200.0
    assert body['discount_total'] == 20.0
    assert body['lines'][0]['trace']


@pytest.mark.parametrize("payload", [{}, {'items': {'p1': 0}}])
def test_quote_rejects_empty_or_zero_quantity(client, payload):
    assert client.post('/api/crm/quotes/calculate', json=payload).status_code == 400


def test_quote_request_date_format(client):
    product = _product(client, name='Seat', base_price=100)
    client.post('/api/crm/products/discounts', json={'name': 'June', 'value': 10, 'end_date': '2026-06-30'})

    bad = client.post('/api/crm/quotes/calculate', json={'items': {product['id']: 1}, 'request_date': 'yesterday'})
    assert bad.status_code == 400
    assert bad.json()['detail'] == {'errors': ['request_date must be YYYY-MM-DD format']}

    last_day = client.post('/api/crm/quotes/calculate', json={
        'items': {product['id']: 1}, 'request_date': '2026-06-30T17:00:00',
    })
    assert last_day.status_code == 200
    assert last_day.json()['discount_total'] == 10.0


# ===== TERMS =====

def test_terms_review_flow(client, auth):
    terms = client.post('/api/crm/products/terms', json={'name': 'MSA', 'content': 'Net 30.'}).json()

    assert client.post(
        f"/api/crm/products/terms/{terms['id']}/send-for-review", json={'recipient_email': 'x@y.com'},
    ).status_code == 401

    sent = client.post(
        f"/api/crm/products/terms/{terms['id']}/send-for-review",
        json={'recipient_email': 'Buyer@Acme.com', 'recipient_name': 'Bo'},
        headers=auth,
    )
    assert sent.status_code == 200
    body = sent.json()
    assert body['review_request']['sender_name'] == 'Admin User'
    assert body['review_request']['recipient_email'] == 'buyer@acme.com'
    token = body['review_url'].rsplit('/', 1)[-1]
    assert body['review_url'] == f"https://console.example.com/terms/review/{token}"

    public = client.get(f'/api/terms/review/{token}').json()
    assert public['terms_content'] == 'Net 30.'
    assert public['status'] == 'viewed'

    answered = client.post(f'/api/terms/review/{token}/respond', json={'action': 'approve', 'signer_name': 'Bo'})
    assert answered.json()['status'] == 'approved'
    again = client.post(f'/api/terms/review/{token}/respond', json={'action': 'reject'})
    assert again.status_code == 400

    assert client.post(f'/api/terms/review/{token}/respond', json={'action': 'maybe'}).status_code == 422
    assert client.get('/api/terms/review/unknown').status_code == 404


def test_terms_ledger_requires_session(client, auth, services):
    terms = services.terms.create_terms({'name': 'MSA', 'content': 'Net 30.'})
    services.terms.send_for_review(terms.id, 'ann@acme.com', sender_name='Sam')

    assert client.get('/api/crm/products/terms/ledger').status_code == 401
    rows = client.get('/api/crm/products/terms/ledger', headers=auth).json()
    assert [r['recipient_email'] for r in rows] == ['ann@acme.com']

    export = client.get('/api/crm/products/terms/ledger/export', headers=auth)
    assert export.status_code == 200
    assert export.headers['content-type'].startswith('text/csv')
    assert 'terms-ledger-' in export.headers['content-disposition']
    parsed = list(csv.reader(io.StringIO(export.text)))
    assert parsed[1][:2] == ['MSA', 'ann@acme.com']


# ===== REPORTS =====

def test_profitability_report_and_exports(client):
    _product(client, name='Licence', base_price=100, cost=40, category='Software')
    _product(client, name='Box', base_price=50, cost=45, category='Hardware')

    report = client.get('/api/crm/reports/profitability').json()
    assert report['summary']['products_with_cost'] == 2
    assert [c['category'] for c in report['by_category']] == ['Software', 'Hardware']
    assert report['buckets']['excellent'] == 1

    exported = client.get('/api/crm/reports/profitability/export.csv')
    assert exported.headers['content-type'].startswith('text/csv')
    assert 'PROFITABILITY BY CATEGORY' in exported.text

    xlsx = client.get('/api/crm/reports/profitability/export.xlsx')
    assert xlsx.status_code == 200
    workbook = openpyxl.load_workbook(io.BytesIO(xlsx.content))
    assert workbook.sheetnames == ['Summary', 'By Category', 'Products']


def test_report_top_n_bounds(client):
    assert client.get('/api/crm/reports/profitability', params={'top_n': 0}).status_code == 422


# ===== INVOICES =====

def test_invoice_lifecycle_records_actor(client, auth):
    created = client.post('/api/crm/invoices', json={'title': 'Q1', 'account_id': 'acme', 'subtotal': 100}, headers=auth)
    assert created.status_code == 201
    invoice = created.json()
    assert invoice['invoice_number'] == 700001

    paid = client.post(f"/api/crm/invoices/{invoice['id']}/payments", json={'amount': 100, 'method': 'ach'}, headers=auth)
    assert paid.json()['balance'] == 0.0
    assert paid.json()['paid_at']

    sub = client.post(f"/api/crm/invoices/{invoice['id']}/subscribe", json={'interval': 'annual', 'start_at': '2026-01-15'})
    assert sub.json()['subscription']['next_invoice_at'].startswith('2027-01-15')

    history = client.get(f"/api/crm/invoices/{invoice['id']}/history").json()
    assert len(history['payments']) == 1
    created_entry = next(h for h in history['history'] if h['event_type'] == 'created')
    assert created_entry['user_name'] == 'Admin User'


def test_invoice_errors(client):
    assert client.get('/api/crm/invoices/missing').status_code == 404
    invoice = client.post('/api/crm/invoices', json={'title': 'Q1', 'account_id': 'acme', 'total': 10}).json()
    assert client.post(f"/api/crm/invoices/{invoice['id']}/payments", json={'amount': 0}).status_code == 400
    assert client.post(f"/api/crm/invoices/{invoice['id']}/cancel-subscription").status_code == 400


# ===== SESSIONS & PREFERENCES =====

def test_sessions_listing_and_revocation(client, auth, session, services):
    other = services.sessions.create_session('u1', 'admin@example.com', jti='other-device')

    assert client.get('/api/auth/sessions').status_code == 401
    listed = client.get('/api/auth/sessions', headers=auth).json()
    assert {s['jti']: s['current'] for s in listed} == {session.jti: True, other.jti: False}

    assert client.delete('/api/auth/sessions/nope', headers=auth).status_code == 404
    assert client.post('/api/auth/sessions/revoke-all', headers=auth).json() == {'success': True, 'revoked': 1}
    assert services.sessions.is_revoked(other.jti)


def test_revoked_token_is_rejected(client, auth, session, services):
    services.sessions.revoke(session.jti, session.user_id)
    response = client.get('/api/auth/sessions', headers=auth)
    assert response.status_code == 401
    assert response.headers['www-authenticate'] == 'Bearer'


def test_preferences(client, auth):
    assert client.get('/api/auth/preferences/me', headers=auth).json() == {'preferences': {}}

    saved = client.put('/api/auth/preferences/me', json={'theme': 'dark', 'layout': 'compact'}, headers=auth)
    assert saved.json()['preferences'] == {'theme': 'dark', 'layout': 'compact'}
    assert client.get('/api/auth/preferences/me', headers=auth).json()['preferences']['theme'] == 'dark'

    assert client.put('/api/auth/preferences/me', json={'theme': 'neon'}, headers=auth).status_code == 422
