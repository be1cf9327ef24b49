"""
Ticket lifecycle: submission, disposition/status updates, issue-type changes
and assignment. Notification dispatch is fire-and-forget.
"""
import logging
from typing import List, Optional

import config
import database
import taxonomy
from assignment import select_assignee
from notifications import notifier
from storage import storage

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'phone', 'designation', 'panel', 'description')

# Admin-editable columns that carry no derived state.
EDITABLE_FIELDS = (
    'name', 'phone', 'email', 'designation', 'panel', 'description',
    'priority', 'remarks', 'ext_remarks', 'resolution_estimate',
)
DERIVED_FIELDS = ('status', 'issue_type_l1', 'closed_time', 'ticket_id', 'created_time')

PUBLIC_FIELDS = (
    'ticket_id', 'created_time', 'name', 'panel', 'issue_type_l1', 'issue_type_l2',
    'status', 'disposition', 'ext_remarks', 'closed_time', 'resolution_estimate',
)


class TicketError(Exception):
    status_code = 400


class TicketNotFound(TicketError):
    status_code = 404


class UnresolvedDispositionError(TicketError):
    pass


def is_terminal(status: Optional[str]) -> bool:
    return status in config.TERMINAL_STATUSES


def closure_time(new_status: Optional[str], current: Optional[dict] = None) -> Optional[str]:
    """
    closed_time for a ticket moving to new_status.
    Set on entering a terminal status, kept while it stays terminal, cleared otherwise.
    """
    if not is_terminal(new_status):
        return None
    if current and is_terminal(current.get('status')) and current.get('closed_time'):
        return current['closed_time']
    return database.now_iso()


def _notify(send, ticket: dict, *args):
    try:
        send(ticket, *args)
    except Exception as e:  # notification failures never touch the ticket
        logger.warning('[Tickets] Notification failed for %s, ticket unaffected: %s', ticket.get('ticket_id'), e)


def _require_ticket(ticket_id) -> dict:
    ticket = database.get_ticket_by_id(ticket_id)
    if ticket is None:
        raise TicketNotFound(f'Ticket {ticket_id} not found')
    return ticket


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
    return value if value not in ('', None) else None


def submit_ticket(form: dict, uploads: Optional[List] = None, tree: Optional[taxonomy.OptionTree] = None) -> dict:
    """
    Create a ticket from a submission form.

    issue_type_l1 is always derived from issue_type_l2; an L2 with no active
    parent stores no L1. The ticket starts as New/Open and is assigned to the
    least-loaded active assignee unless assigned_to_id is given. Attachments
    are uploaded all-or-nothing, and removed again if the row cannot be written.
    """
    missing = [f for f in REQUIRED_FIELDS if not _clean(form.get(f))]
    l2 = _clean(form.get('issue_type_l2'))
    if not l2:
        missing.append('issue_type_l2')
    if missing:
        raise TicketError(f"Missing required fields: {', '.join(missing)}")

    tree = tree or taxonomy.load_tree()
    l1 = tree.resolve_parent('issue_type_l2', l2)
    if l1 is None:
        logger.warning('[Tickets] No parent L1 for issue type %r, storing it without one', l2)

    assigned_to_id = _clean(form.get('assigned_to_id'))
    if assigned_to_id is not None:
        assignee = database.get_assignee(assigned_to_id)
        if assignee is None or not assignee['is_active']:
            raise TicketError(f'Assignee {assigned_to_id} is not an active assignee')
    else:
        assigned_to_id = select_assignee()

    attachments = storage.upload_files(uploads or [])

    try:
        ticket = database.create_ticket({
            'name': _clean(form.get('name')),
            'phone': _clean(form.get('phone')),
            'email': _clean(form.get('email')),
            'designation': _clean(form.get('designation')),
            'panel': _clean(form.get('panel')),
            'issue_type_l1': l1,
            'issue_type_l2': l2,
            'description': _clean(form.get('description')),
            'disposition': config.DEFAULT_NEW_DISPOSITION,
            'status': config.DEFAULT_NEW_STATUS,
            'assigned_to_id': assigned_to_id,
            'source': _clean(form.get('source')),
            'attachments': attachments,
        })
    except Exception:
        if attachments:
            logger.error('[Tickets] Ticket insert failed, removing %d uploaded attachments', len(attachments))
            storage.delete_all(attachments)
        raise
    logger.info('[Tickets] Created %s (assignee=%s, attachments=%d)',
                ticket['ticket_id'], assigned_to_id, len(attachments))

    _notify(notifier.send_ticket_created, ticket)
    return ticket


def update_disposition(ticket_id, disposition: str, tree: Optional[taxonomy.OptionTree] = None) -> dict:
    """
    Set a ticket's disposition and derive its status from it.
    disposition, status and closed_time are written in one update.
    """
    disposition = _clean(disposition)
    if not disposition:
        raise TicketError('disposition is required')
    ticket = _require_ticket(ticket_id)

    tree = tree or taxonomy.load_tree()
    status = tree.resolve_parent('disposition', disposition)
    if status is None:
        policy = config.UNRESOLVED_DISPOSITION_POLICY
        if policy == 'keep':
            status = ticket['status']
        elif policy == 'default':
            status = config.FALLBACK_STATUS
        else:
            raise UnresolvedDispositionError(f'Disposition {disposition!r} has no active parent status')
        logger.warning('[Tickets] Disposition %r unresolved, policy=%s -> status %r', disposition, policy, status)

    changes = {
        'disposition': disposition,
        'status': status,
        'closed_time': closure_time(status, ticket),
    }
    database.update_ticket(ticket['id'], changes)
    updated = database.get_ticket_by_id(ticket['id'])

    if ticket.get('disposition') != disposition:
        _notify(notifier.send_disposition_notification, updated, disposition)
    return updated


def update_issue_type_l2(ticket_id, issue_type_l2: str, tree: Optional[taxonomy.OptionTree] = None) -> dict:
    """Change the L2 issue type; its L1 parent is written alongside it."""
    issue_type_l2 = _clean(issue_type_l2)
    if not issue_type_l2:
        raise TicketError('issue_type_l2 is required')
    ticket = _require_ticket(ticket_id)

    tree = tree or taxonomy.load_tree()
    l1 = tree.resolve_parent('issue_type_l2', issue_type_l2)
    if l1 is None:
        raise TicketError(f'Issue type {issue_type_l2!r} has no active L1 parent')

    database.update_ticket(ticket['id'], {'issue_type_l2': issue_type_l2, 'issue_type_l1': l1})
    return database.get_ticket_by_id(ticket['id'])


def update_ticket_fields(ticket_id, fields: dict) -> dict:
    """Edit free-form ticket fields. Derived fields are refused."""
    derived = [f for f in DERIVED_FIELDS if f in fields]
    if derived:
        raise TicketError(f"Fields are derived and cannot be set directly: {', '.join(derived)}")
    unknown = [f for f in fields if f not in EDITABLE_FIELDS]
    if unknown:
        raise TicketError(f"Unknown fields: {', '.join(unknown)}")
    if not fields:
        raise TicketError('No fields to update')
    for required in REQUIRED_FIELDS:
        if required in fields and not _clean(fields[required]):
            raise TicketError(f'{required} cannot be empty')

    ticket = _require_ticket(ticket_id)
    changes = {k: _clean(v) for k, v in fields.items()}
    database.update_ticket(ticket['id'], changes)
    updated = database.get_ticket_by_id(ticket['id'])

    if 'ext_remarks' in changes and changes['ext_remarks'] and changes['ext_remarks'] != ticket.get('ext_remarks'):
        _notify(notifier.send_external_remarks, updated)
    return updated


def assign_ticket(ticket_id, assignee_id=None) -> dict:
    """Point a ticket at an active assignee, or at the least-loaded one if none is given."""
    ticket = _require_ticket(ticket_id)
    if assignee_id is None:
        assignee_id = select_assignee()
        if assignee_id is None:
            raise TicketError('No active assignees available')
    else:
        assignee = database.get_assignee(assignee_id)
        if assignee is None or not assignee['is_active']:
            raise TicketError(f'Assignee {assignee_id} is not an active assignee')

    database.update_ticket(ticket['id'], {'assigned_to_id': assignee_id})
    logger.info('[Tickets] %s assigned to %s', ticket['ticket_id'], assignee_id)
    return database.get_ticket_by_id(ticket['id'])


def get_ticket(ticket_id, with_urls: bool = False) -> dict:
    ticket = _require_ticket(ticket_id)
    if with_urls and ticket['attachments']:
        ticket['attachments'] = storage.with_signed_urls(ticket['attachments'])
    return ticket


def lookup_ticket(public_ticket_id: str) -> dict:
    """Reduced view of a ticket for the submitter-facing status page."""
    ticket = database.get_ticket_by_ticket_id(public_ticket_id)
    if ticket is None:
        raise TicketNotFound(f'Ticket {public_ticket_id} not found')
    return {k: ticket.get(k) for k in PUBLIC_FIELDS}
