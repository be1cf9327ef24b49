"""Ticket analytics plus the filter/search/sort/paginate helpers behind the dashboard."""
import datetime
from collections import Counter
from typing import Iterable, List, Optional

import config

FILTER_FIELDS = ('status', 'disposition', 'priority', 'panel', 'designation',
                 'issue_type_l1', 'issue_type_l2', 'assigned_to_id')
SEARCH_FIELDS = ('ticket_id', 'name', 'phone', 'email', 'description')
SORT_FIELDS = ('created_time', 'closed_time', 'ticket_id', 'name', 'status', 'disposition', 'priority')


def _parse_time(value) -> Optional[datetime.datetime]:
    if not value:
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        try:
            parsed = datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def in_period(tickets: Iterable[dict], start=None, end=None) -> List[dict]:
    """Tickets created within [start, end]. Either bound may be omitted."""
    start, end = _parse_time(start), _parse_time(end)
    result = []
    for t in tickets:
        created = _parse_time(t.get('created_time'))
        if created is None:
            continue
        if start and created < start:
            continue
        if end and created > end:
            continue
        result.append(t)
    return result


def compute_analytics(tickets: List[dict], assignees: Optional[List[dict]] = None, start=None, end=None) -> dict:
    """Ticket volume and resolution summary for the analytics view."""
    tickets = in_period(tickets, start, end) if (start or end) else list(tickets)
    names = {a['id']: a['name'] for a in (assignees or [])}

    def breakdown(field):
        return dict(Counter(t.get(field) or 'Unspecified' for t in tickets))

    statuses = Counter(t.get('status') for t in tickets)
    priorities = Counter(t.get('priority') for t in tickets)

    closed = [t for t in tickets if t.get('status') in config.TERMINAL_STATUSES]
    durations = []
    for t in closed:
        opened, finished = _parse_time(t.get('created_time')), _parse_time(t.get('closed_time'))
        if opened and finished:
            durations.append((finished - opened).total_seconds() / 3600)

    return {
        'total': len(tickets),
        'open': statuses.get('Open', 0),
        'ongoing': statuses.get('Ongoing', 0),
        'closed': len(closed),
        'resolved': sum(1 for t in tickets if t.get('disposition') == 'Resolved'),
        'highPriority': priorities.get('High', 0),
        'mediumPriority': priorities.get('Medium', 0),
        'lowPriority': priorities.get('Low', 0),
        'avgResolutionHours': round(sum(durations) / len(durations), 1) if durations else None,
        'byStatus': dict(statuses),
        'byPanel': breakdown('panel'),
        'byIssueType': breakdown('issue_type_l1'),
        'byIssueTypeL2': breakdown('issue_type_l2'),
        'byDisposition': breakdown('disposition'),
        'byDesignation': breakdown('designation'),
        'byAssignee': dict(Counter(names.get(t.get('assigned_to_id'), 'Unassigned') for t in tickets)),
    }


def filter_tickets(tickets: Iterable[dict], q: str = '', **filters) -> List[dict]:
    """Exact-match filters (case-insensitive) plus a free-text search."""
    active = {k: str(v).lower() for k, v in filters.items() if k in FILTER_FIELDS and v not in (None, '')}
    needle = (q or '').strip().lower()

    result = []
    for t in tickets:
        if any(str(t.get(k) or '').lower() != v for k, v in active.items()):
            continue
        if needle and not any(needle in str(t.get(f) or '').lower() for f in SEARCH_FIELDS):
            continue
        result.append(t)
    return result


def sort_tickets(tickets: List[dict], sort_by: str = 'created_time', descending: bool = True) -> List[dict]:
    if sort_by not in SORT_FIELDS:
        sort_by = 'created_time'
    # missing values always go last
    present = [t for t in tickets if t.get(sort_by) not in (None, '')]
    missing = [t for t in tickets if t.get(sort_by) in (None, '')]
    return sorted(present, key=lambda t: str(t[sort_by]).lower(), reverse=descending) + missing


def paginate(items: List, page: int = 1, per_page: int = 20) -> dict:
    per_page = max(1, min(per_page, 100))
    total = len(items)
    pages = max(1, -(-total // per_page))
    page = max(1, min(page, pages))
    start = (page - 1) * per_page
    return {
        'items': items[start:start + per_page],
        'page': page,
        'per_page': per_page,
        'total': total,
        'pages': pages,
    }
