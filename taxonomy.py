"""
Two-level dropdown taxonomy: status -> disposition and issue_type_l1 -> issue_type_l2.

Options live in one self-referencing table. An OptionTree is a snapshot of
that table; parent resolution is a pure lookup over the snapshot, so it can
be tested without a store.
"""
from collections import defaultdict
from typing import Dict, List, Optional

import database

# child type -> expected parent type
PARENT_TYPES = {
    'issue_type_l2': 'issue_type_l1',
    'disposition': 'status',
}


class TaxonomyError(ValueError):
    """An option write would break the two-level hierarchy."""


class OptionTree:
    """Snapshot of the dropdown option table."""

    def __init__(self, options: List[dict]):
        self._by_id: Dict[int, dict] = {}
        self._active: Dict[tuple, List[dict]] = defaultdict(list)
        for option in options:
            self._by_id[option['id']] = option
            if option.get('is_active'):
                self._active[(option['dropdown_type'], option['value'])].append(option)

    def get(self, option_id) -> Optional[dict]:
        return self._by_id.get(option_id)

    def find(self, dropdown_type: str, value: str) -> Optional[dict]:
        """The single active option with this type and value, else None."""
        matches = self._active.get((dropdown_type, value), [])
        if len(matches) != 1:
            return None
        return matches[0]

    def is_taken(self, dropdown_type: str, value: str, exclude_id=None) -> bool:
        """True if another active option already uses this type and value."""
        return any(o['id'] != exclude_id for o in self._active.get((dropdown_type, value), []))

    def resolve_parent(self, child_type: str, child_value: str) -> Optional[str]:
        """
        Value of the active parent option for (child_type, child_value).

        Returns None when the child is unknown or ambiguous, has no parent,
        or its parent is missing, inactive or of the wrong type.
        """
        if child_type not in PARENT_TYPES:
            raise ValueError(f'{child_type!r} has no parent type')
        if not child_value:
            return None
        child = self.find(child_type, child_value)
        if child is None or child.get('parent_id') is None:
            return None
        parent = self.get(child['parent_id'])
        if parent is None or not parent.get('is_active'):
            return None
        if parent['dropdown_type'] != PARENT_TYPES[child_type]:
            return None
        return parent['value']

    def children(self, parent_type: str, parent_value: str) -> List[dict]:
        """Active child options hanging off an active parent."""
        parent = self.find(parent_type, parent_value)
        if parent is None:
            return []
        child_types = [c for c, p in PARENT_TYPES.items() if p == parent_type]
        result = [
            o for o in self._by_id.values()
            if o.get('is_active') and o.get('parent_id') == parent['id'] and o['dropdown_type'] in child_types
        ]
        return sorted(result, key=lambda o: (o.get('sort_order') or 0, o['value']))


def load_tree() -> OptionTree:
    """Build a snapshot from every option row, active or not."""
    return OptionTree(database.list_dropdown_options(include_inactive=True))


def resolve_parent(child_type: str, child_value: str, tree: Optional[OptionTree] = None) -> Optional[str]:
    if tree is None:
        tree = load_tree()
    return tree.resolve_parent(child_type, child_value)


def validate_option(tree: OptionTree, dropdown_type: str, parent_id=None):
    """Raise TaxonomyError if an option of this type may not point at parent_id."""
    if dropdown_type not in database.DROPDOWN_TYPES:
        raise TaxonomyError(f'Unknown dropdown type: {dropdown_type}')

    expected = PARENT_TYPES.get(dropdown_type)
    if parent_id is None:
        return
    if expected is None:
        raise TaxonomyError(f'{dropdown_type} options cannot have a parent')

    parent = tree.get(parent_id)
    if parent is None or not parent.get('is_active'):
        raise TaxonomyError(f'Parent option {parent_id} does not exist or is inactive')
    if parent['dropdown_type'] != expected:
        raise TaxonomyError(f'{dropdown_type} options must hang off a {expected} option')


def validate_option_update(tree: OptionTree, option: dict, updates: dict):
    """
    Raise TaxonomyError if applying updates to an existing option would leave
    two active options with the same type and value, or an active child under
    a missing or inactive parent.
    """
    merged = dict(option)
    merged.update({k: updates[k] for k in ('value', 'parent_id', 'is_active') if k in updates})
    if 'value' in updates and not (merged['value'] or '').strip():
        raise TaxonomyError('value cannot be empty')
    if not merged.get('is_active'):
        return

    if tree.is_taken(option['dropdown_type'], merged['value'], exclude_id=option['id']):
        raise TaxonomyError(f"An active {option['dropdown_type']} option {merged['value']!r} already exists")
    if 'parent_id' in updates or not option.get('is_active'):
        validate_option(tree, option['dropdown_type'], merged.get('parent_id'))
