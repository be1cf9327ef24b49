import re

import config
import database


def test_create_ticket_stamps_daily_sequence(make_ticket):
    first = make_ticket()
    second = make_ticket()
    assert re.fullmatch(r'A-\d{6}-1', first['ticket_id'])
    assert second['ticket_id'] == first['ticket_id'][:-1] + '2'
    assert first['attachments'] == []
    assert first['created_time']


def test_wildcard_prefix_counts_only_its_own_tickets(make_ticket, monkeypatch):
    monkeypatch.setattr(config, 'TICKET_ID_PREFIX', 'AB')
    make_ticket()
    monkeypatch.setattr(config, 'TICKET_ID_PREFIX', 'A_')
    assert make_ticket()['ticket_id'].endswith('-1')


def test_update_ticket_ignores_unknown_columns(make_ticket):
    ticket = make_ticket()
    database.update_ticket(ticket['id'], {'disposition': 'Resolved', 'status': 'Closed',
                                          'closed_time': '2024-01-01T00:00:00+00:00', 'ticket_id': 'HACK'})
    stored = database.get_ticket_by_id(ticket['id'])
    assert (stored['disposition'], stored['status']) == ('Resolved', 'Closed')
    assert stored['ticket_id'] == ticket['ticket_id']


def test_inactive_assignee_ticket_query(make_assignee, make_ticket):
    gone = make_assignee('Gone')
    here = make_assignee('Here')
    stale = make_ticket(assigned_to_id=gone['id'])
    make_ticket(status='Closed', assigned_to_id=gone['id'])
    make_ticket(assigned_to_id=here['id'])
    database.set_assignee_active(gone['id'], False)

    found = database.find_tickets_assigned_to_inactive_assignees(['Closed'])
    assert [t['id'] for t in found] == [stale['id']]
    assert [a['name'] for a in database.list_active_assignees()] == ['Here']


def test_dropdown_queries(options):
    assert database.find_option('disposition', 'Resolved')['parent_id'] == options['Closed']['id']
    database.deactivate_dropdown_option(options['Resolved']['id'])
    assert database.find_option('disposition', 'Resolved') is None
    assert database.find_option_by_id(options['Resolved']['id'])['is_active'] is False
    statuses = [o['value'] for o in database.list_dropdown_options('status')]
    assert statuses == ['Open', 'Ongoing', 'Closed']
