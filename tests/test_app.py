import io
import sqlite3

import pytest

import auth
import database
import taxonomy
from app import app


@pytest.fixture
def client():
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def headers():
    admin = database.create_admin('ops', auth.hash_password('s3cret'), name='Ops')
    return {'Authorization': f'Bearer {auth.generate_token(admin)}'}


FORM = {
    'name': 'Asha', 'phone': '9876543210', 'designation': 'DSO', 'panel': 'Goal App',
    'issue_type_l2': 'Login Failure', 'description': 'OTP never arrives',
}


def test_status(client):
    resp = client.get('/api/status')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'running'


def test_login(client):
    database.create_admin('ops', auth.hash_password('s3cret'))

    resp = client.post('/api/admin/login', json={'loginId': 'ops', 'password': 's3cret'})
    assert resp.status_code == 200
    token = resp.get_json()['token']
    me = client.get('/api/admin/me', headers={'Authorization': f'Bearer {token}'})
    assert me.get_json()['login_id'] == 'ops'

    bad = client.post('/api/admin/login', json={'loginId': 'ops', 'password': 'nope'})
    assert bad.status_code == 401


def test_admin_routes_need_token(client):
    assert client.get('/api/tickets').status_code == 401
    assert client.get('/api/tickets', headers={'Authorization': 'Bearer junk'}).status_code == 401


def test_submit_json_ticket(client, options, make_assignee):
    assignee = make_assignee('A')
    resp = client.post('/api/tickets', json=dict(FORM, assigned_to_id=999))
    assert resp.status_code == 201
    ticket = resp.get_json()['ticket']
    assert ticket['issue_type_l1'] == 'Tech'
    assert ticket['assigned_to_id'] == assignee['id']

    lookup = client.get(f"/api/tickets/lookup/{ticket['ticket_id']}")
    assert lookup.get_json()['status'] == 'Open'
    assert client.get('/api/tickets/lookup/A-000000-0').status_code == 404


def test_submit_multipart_ticket(client, options, s3):
    data = dict(FORM)
    data['files'] = [(io.BytesIO(b'png'), 'shot.png', 'image/png')]
    resp = client.post('/api/tickets', data=data, content_type='multipart/form-data')
    assert resp.status_code == 201
    assert resp.get_json()['ticket']['attachments'][0]['originalName'] == 'shot.png'


def test_submit_rejects_bad_attachment(client, options, s3):
    data = dict(FORM)
    data['files'] = [(io.BytesIO(b'MZ'), 'tool.exe', 'application/x-msdownload')]
    resp = client.post('/api/tickets', data=data, content_type='multipart/form-data')
    assert resp.status_code == 400
    assert database.list_tickets() == []


def test_submit_missing_fields(client, options):
    resp = client.post('/api/tickets', json={'name': 'Asha'})
    assert resp.status_code == 400
    assert 'Missing required fields' in resp.get_json()['error']


def test_disposition_flow(client, headers, options, make_ticket):
    ticket = make_ticket()

    resp = client.post(f"/api/tickets/{ticket['id']}/disposition", json={'disposition': 'Resolved'}, headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'Closed'
    assert body['closed_time']

    resp = client.post(f"/api/tickets/{ticket['id']}/disposition", json={'disposition': 'Bogus'}, headers=headers)
    assert resp.status_code == 400

    resp = client.post('/api/tickets/999/disposition', json={'disposition': 'Resolved'}, headers=headers)
    assert resp.status_code == 404


def test_list_tickets_filters_and_paginates(client, headers, options, make_ticket):
    make_ticket(name='Asha')
    make_ticket(name='Bala', status='Closed', disposition='Resolved')

    body = client.get('/api/tickets?status=Closed', headers=headers).get_json()
    assert body['total'] == 1
    assert body['items'][0]['name'] == 'Bala'

    body = client.get('/api/tickets?q=asha&per_page=1', headers=headers).get_json()
    assert [t['name'] for t in body['items']] == ['Asha']


def test_patch_ticket(client, headers, options, make_ticket):
    ticket = make_ticket()
    resp = client.patch(f"/api/tickets/{ticket['id']}", json={'priority': 'High'}, headers=headers)
    assert resp.get_json()['priority'] == 'High'
    resp = client.patch(f"/api/tickets/{ticket['id']}", json={'issue_type_l1': 'Training'}, headers=headers)
    assert resp.status_code == 400


def test_issue_type_route(client, headers, options, make_ticket):
    ticket = make_ticket()
    resp = client.post(f"/api/tickets/{ticket['id']}/issue-type", json={'issue_type_l2': 'Onboarding'}, headers=headers)
    assert resp.get_json()['issue_type_l1'] == 'Training'


def test_deactivating_assignee_reassigns_open_tickets(client, headers, options, make_assignee, make_ticket):
    leaving = make_assignee('Leaving')
    staying = make_assignee('Staying')
    open_ticket = make_ticket(assigned_to_id=leaving['id'])

    resp = client.post(f"/api/assignees/{leaving['id']}/deactivate", headers=headers)
    assert resp.get_json()['reassigned'] == 1
    assert database.get_ticket_by_id(open_ticket['id'])['assigned_to_id'] == staying['id']

    stats = client.get('/api/assignees/stats', headers=headers).get_json()
    assert {s['assignee_name']: s['active_tickets'] for s in stats} == {'Leaving': 0, 'Staying': 1}


def test_assign_route(client, headers, options, make_assignee, make_ticket):
    a = make_assignee('A')
    ticket = make_ticket()
    resp = client.post(f"/api/tickets/{ticket['id']}/assign", json={}, headers=headers)
    assert resp.get_json()['assigned_to_id'] == a['id']
    resp = client.post(f"/api/tickets/{ticket['id']}/assign", json={'assignee_id': 'x'}, headers=headers)
    assert resp.status_code == 400


def test_dropdown_management(client, headers, options):
    resp = client.post('/api/admin/dropdowns', headers=headers,
                       json={'dropdown_type': 'issue_type_l2', 'value': 'Payout Delay', 'parent_id': options['Tech']['id']})
    assert resp.status_code == 201

    resp = client.post('/api/admin/dropdowns', headers=headers,
                       json={'dropdown_type': 'issue_type_l2', 'value': 'Bad', 'parent_id': options['Open']['id']})
    assert resp.status_code == 400

    children = client.get('/api/dropdowns/issue_type_l2?parent=Tech').get_json()
    assert 'Payout Delay' in [o['value'] for o in children]

    resp = client.delete(f"/api/admin/dropdowns/{options['Onboarding']['id']}", headers=headers)
    assert resp.status_code == 200
    grouped = client.get('/api/dropdowns').get_json()
    assert 'Onboarding' not in [o['value'] for o in grouped['issue_type_l2']]


def test_analytics_route(client, headers, options, make_ticket):
    make_ticket()
    body = client.get('/api/analytics', headers=headers).get_json()
    assert body['total'] == 1
    assert body['open'] == 1


def test_database_errors_map_to_503(client, monkeypatch):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError('unable to open database file')

    monkeypatch.setattr(database, 'list_dropdown_options', broken)
    assert client.get('/api/dropdowns').status_code == 503


def test_dropdown_updates_cannot_break_resolution(client, headers, options):
    login_id = options['Login Failure']['id']
    resp = client.patch(f'/api/admin/dropdowns/{login_id}', json={'value': 'App Crash'}, headers=headers)
    assert resp.status_code == 400
    resp = client.post('/api/admin/dropdowns', headers=headers,
                       json={'dropdown_type': 'issue_type_l2', 'value': 'App Crash', 'parent_id': options['Tech']['id']})
    assert resp.status_code == 400

    client.delete(f"/api/admin/dropdowns/{options['Onboarding']['id']}", headers=headers)
    client.delete(f"/api/admin/dropdowns/{options['Training']['id']}", headers=headers)
    resp = client.patch(f"/api/admin/dropdowns/{options['Onboarding']['id']}", json={'is_active': True}, headers=headers)
    assert resp.status_code == 400
    assert taxonomy.resolve_parent('issue_type_l2', 'Login Failure') == 'Tech'
