"""
Auto-assignment engine for routing tickets to support assignees.
Least-loaded round-robin over active assignees; ties go to the earliest registered.
"""
import logging
from typing import List, Optional

import config
import database

logger = logging.getLogger(__name__)


def pick_least_loaded(assignees: List[dict], counts: dict) -> Optional[dict]:
    """
    Choose the assignee with the fewest active tickets.
    Ties are broken by created_at, then id, so the result never depends on query order.
    """
    if not assignees:
        return None
    return min(assignees, key=lambda a: (counts.get(a['id'], 0), a['created_at'], a['id']))


def select_assignee() -> Optional[int]:
    """
    Id of the active assignee who should take the next ticket.
    Returns None when nobody is active; the ticket then stays unassigned.
    """
    assignees = database.list_active_assignees()
    if not assignees:
        logger.warning('[Assignment] No active assignees found for auto-assignment')
        return None

    counts = database.get_active_ticket_counts(config.TERMINAL_STATUSES)
    selected = pick_least_loaded(assignees, counts)
    logger.info('[Assignment] Selected %s (%s) - active tickets: %d',
                selected['name'], selected['department'], counts.get(selected['id'], 0))
    return selected['id']


def reassign_from_inactive_assignees() -> int:
    """
    Move every open ticket held by an inactive assignee onto the current active roster.

    Each ticket is handled on its own: a failed update is logged and skipped.
    Returns how many tickets were reassigned.
    """
    tickets = database.find_tickets_assigned_to_inactive_assignees(config.TERMINAL_STATUSES)
    if not tickets:
        return 0

    reassigned = 0
    failures = []
    for ticket in tickets:
        try:
            new_assignee_id = select_assignee()
            if new_assignee_id is None:
                logger.warning('[Assignment] No active assignees left, %d tickets stay put',
                               len(tickets) - reassigned - len(failures))
                break
            database.update_ticket(ticket['id'], {'assigned_to_id': new_assignee_id})
        except Exception as e:
            failures.append((ticket['id'], str(e)))
            logger.error('[Assignment] Failed to reassign ticket %s: %s', ticket['id'], e)
            continue
        reassigned += 1
        logger.info('[Assignment] Reassigned ticket %s from inactive assignee %s to %s',
                    ticket['ticket_id'], ticket['assigned_to_id'], new_assignee_id)

    if failures:
        logger.warning('[Assignment] Reassignment finished with %d failures', len(failures))
    return reassigned


def get_team_workload() -> dict:
    """Active ticket count per active assignee id (for load balancing views)."""
    counts = database.get_active_ticket_counts(config.TERMINAL_STATUSES)
    return {a['id']: counts.get(a['id'], 0) for a in database.list_active_assignees()}
