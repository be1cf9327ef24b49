from unittest.mock import MagicMock

import pytest

import config
import database
from notifications import notifier
from storage import storage


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    """Fresh SQLite file per test with the default Open/Ongoing/Closed taxonomy settings."""
    monkeypatch.setattr(database, 'DB_PATH', str(tmp_path / 'test.db'))
    monkeypatch.setattr(config, 'TERMINAL_STATUSES', ['Closed'])
    monkeypatch.setattr(config, 'UNRESOLVED_DISPOSITION_POLICY', 'reject')
    monkeypatch.setattr(config, 'TICKET_ID_PREFIX', 'A')
    database.init_db()
    return database.DB_PATH


@pytest.fixture(autouse=True)
def sent(monkeypatch):
    """Capture outbound WhatsApp messages instead of calling the gateway."""
    messages = []

    def fake_send(phone, template_name, variables, name=''):
        messages.append({'phone': phone, 'template': template_name, 'variables': variables, 'name': name})
        return True

    monkeypatch.setattr(notifier, 'send_templated', fake_send)
    return messages


@pytest.fixture
def s3(monkeypatch):
    client = MagicMock()
    client.generate_presigned_url.side_effect = (
        lambda op, Params, ExpiresIn: f"https://signed/{Params['Key']}?inline={'ResponseContentDisposition' in Params}")
    monkeypatch.setattr(storage, '_client', client)
    monkeypatch.setattr(storage, 'bucket', 'test-bucket')
    return client


@pytest.fixture
def options():
    """Seed the two-level taxonomy; returns {value: option row}."""
    rows = {}
    for i, status in enumerate(['Open', 'Ongoing', 'Closed']):
        rows[status] = database.add_dropdown_option('status', status, sort_order=i)
    for disposition, parent in [('New', 'Open'), ('In Progress', 'Ongoing'), ('No Response 1', 'Ongoing'),
                                ('Resolved', 'Closed'), ('No Response 2', 'Closed')]:
        rows[disposition] = database.add_dropdown_option('disposition', disposition, rows[parent]['id'])
    for l1 in ['Tech', 'Training']:
        rows[l1] = database.add_dropdown_option('issue_type_l1', l1)
    for l2, parent in [('Login Failure', 'Tech'), ('App Crash', 'Tech'), ('Onboarding', 'Training')]:
        rows[l2] = database.add_dropdown_option('issue_type_l2', l2, rows[parent]['id'])
    return rows


@pytest.fixture
def make_ticket():
    def _make(status='Open', assigned_to_id=None, **fields):
        data = {
            'name': 'Ravi', 'phone': '9876543210', 'designation': 'DSO', 'panel': 'Goal App',
            'issue_type_l1': 'Tech', 'issue_type_l2': 'Login Failure', 'description': 'Cannot log in',
            'disposition': 'New', 'status': status, 'assigned_to_id': assigned_to_id,
        }
        data.update(fields)
        return database.create_ticket(data)
    return _make


@pytest.fixture
def make_assignee():
    counter = {'n': 0}

    def _make(name, is_active=True, created_at=None):
        counter['n'] += 1
        created_at = created_at or f'2024-01-{counter["n"]:02d}T09:00:00+00:00'
        return database.create_assignee(name, 'Support', '9000000000', is_active=is_active, created_at=created_at)
    return _make
