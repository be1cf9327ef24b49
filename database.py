"""SQLite helpers for tickets, assignees, dropdown options and admins."""
import sqlite3
import json
import datetime

import config

DB_PATH = config.DB_PATH

DROPDOWN_TYPES = ('status', 'priority', 'panel', 'issue_type_l1', 'issue_type_l2', 'designation', 'disposition')

# Columns an UPDATE may touch. Anything else is ignored by update_ticket.
TICKET_COLUMNS = (
    'name', 'phone', 'email', 'designation', 'panel',
    'issue_type_l1', 'issue_type_l2', 'description', 'remarks', 'ext_remarks',
    'status', 'disposition', 'priority', 'assigned_to_id',
    'closed_time', 'resolution_estimate', 'source', 'attachments',
)


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def get_conn():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


def init_db():
    conn = get_conn()
    try:
        conn.executescript('''
        CREATE TABLE IF NOT EXISTS assignees (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            department TEXT,
            phone TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS ticket_dropdown (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            dropdown_type TEXT NOT NULL,
            value TEXT NOT NULL,
            parent_id INTEGER REFERENCES ticket_dropdown(id),
            is_active INTEGER NOT NULL DEFAULT 1,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS tickets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            ticket_id TEXT UNIQUE,
            name TEXT NOT NULL,
            phone TEXT NOT NULL,
            email TEXT,
            designation TEXT,
            panel TEXT,
            issue_type_l1 TEXT,
            issue_type_l2 TEXT,
            description TEXT,
            remarks TEXT,
            ext_remarks TEXT,
            status TEXT NOT NULL,
            disposition TEXT,
            priority TEXT,
            assigned_to_id INTEGER REFERENCES assignees(id),
            attachments TEXT NOT NULL DEFAULT '[]',
            source TEXT,
            created_time TEXT NOT NULL,
            closed_time TEXT,
            resolution_estimate TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS admins (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            login_id TEXT UNIQUE NOT NULL,
            name TEXT,
            password_hash TEXT NOT NULL,
            access_level TEXT NOT NULL DEFAULT 'admin',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_tickets_assigned ON tickets(assigned_to_id, status);
        CREATE INDEX IF NOT EXISTS idx_dropdown_type_value ON ticket_dropdown(dropdown_type, value);
        ''')
        conn.commit()
    finally:
        conn.close()


def _ticket_from_row(row):
    if row is None:
        return None
    ticket = dict(row)
    try:
        ticket['attachments'] = json.loads(ticket.get('attachments') or '[]')
    except ValueError:
        ticket['attachments'] = []
    return ticket


def _bool_row(row):
    if row is None:
        return None
    item = dict(row)
    item['is_active'] = bool(item['is_active'])
    return item


def _placeholders(values) -> str:
    return ','.join('?' for _ in values)


# ============ Tickets ============

def create_ticket(fields: dict) -> dict:
    """
    Insert a ticket and stamp its human-readable id (<prefix>-<ddmmyy>-<seq>).
    The sequence is per day and is computed inside the same write transaction.
    """
    created = datetime.datetime.now(datetime.timezone.utc)
    created_time = created.isoformat()
    day_prefix = f"{config.TICKET_ID_PREFIX}-{created.strftime('%d%m%y')}-"

    columns = [c for c in TICKET_COLUMNS if c in fields]
    values = [json.dumps(fields[c]) if c == 'attachments' else fields[c] for c in columns]

    conn = get_conn()
    conn.isolation_level = None
    try:
        conn.execute('BEGIN IMMEDIATE')
        cur = conn.execute('SELECT COUNT(*) FROM tickets WHERE substr(ticket_id, 1, ?) = ?',
                           (len(day_prefix), day_prefix))
        seq = cur.fetchone()[0] + 1
        ticket_id = f'{day_prefix}{seq}'
        cur = conn.execute(
            f'''INSERT INTO tickets ({', '.join(columns + ['ticket_id', 'created_time', 'updated_at'])})
                VALUES ({_placeholders(columns + [0, 0, 0])})''',
            values + [ticket_id, created_time, created_time])
        row_id = cur.lastrowid
        conn.execute('COMMIT')
    except Exception:
        if conn.in_transaction:
            conn.execute('ROLLBACK')
        raise
    finally:
        conn.close()
    return get_ticket_by_id(row_id)


def update_ticket(ticket_id, fields: dict):
    """Apply a partial update to one ticket as a single UPDATE statement."""
    columns = [c for c in TICKET_COLUMNS if c in fields]
    if not columns:
        return
    values = [json.dumps(fields[c]) if c == 'attachments' else fields[c] for c in columns]
    assignments = ', '.join(f'{c} = ?' for c in columns)
    conn = get_conn()
    try:
        conn.execute(f'UPDATE tickets SET {assignments}, updated_at = ? WHERE id = ?',
                     values + [now_iso(), ticket_id])
        conn.commit()
    finally:
        conn.close()


def get_ticket_by_id(ticket_id):
    conn = get_conn()
    try:
        row = conn.execute('SELECT * FROM tickets WHERE id = ?', (ticket_id,)).fetchone()
    finally:
        conn.close()
    return _ticket_from_row(row)


def get_ticket_by_ticket_id(ticket_id: str):
    conn = get_conn()
    try:
        row = conn.execute('SELECT * FROM tickets WHERE ticket_id = ?', (ticket_id,)).fetchone()
    finally:
        conn.close()
    return _ticket_from_row(row)


def list_tickets():
    conn = get_conn()
    try:
        rows = conn.execute('SELECT * FROM tickets ORDER BY created_time DESC, id DESC').fetchall()
    finally:
        conn.close()
    return [_ticket_from_row(r) for r in rows]


def get_active_ticket_count_for_assignee(assignee_id, terminal_statuses) -> int:
    terminal = list(terminal_statuses)
    conn = get_conn()
    try:
        cur = conn.execute(
            f'''SELECT COUNT(*) FROM tickets
                WHERE assigned_to_id = ? AND status NOT IN ({_placeholders(terminal)})''',
            [assignee_id] + terminal)
        return cur.fetchone()[0]
    finally:
        conn.close()


def get_active_ticket_counts(terminal_statuses) -> dict:
    """Active (non-terminal) ticket count per assignee id, for assignees holding any."""
    terminal = list(terminal_statuses)
    conn = get_conn()
    try:
        rows = conn.execute(
            f'''SELECT assigned_to_id, COUNT(*) FROM tickets
                WHERE assigned_to_id IS NOT NULL AND status NOT IN ({_placeholders(terminal)})
                GROUP BY assigned_to_id''',
            terminal).fetchall()
    finally:
        conn.close()
    return {r[0]: r[1] for r in rows}


def find_tickets_assigned_to_inactive_assignees(terminal_statuses):
    terminal = list(terminal_statuses)
    conn = get_conn()
    try:
        rows = conn.execute(
            f'''SELECT t.* FROM tickets t
                JOIN assignees a ON a.id = t.assigned_to_id
                WHERE a.is_active = 0 AND t.status NOT IN ({_placeholders(terminal)})
                ORDER BY t.created_time, t.id''',
            terminal).fetchall()
    finally:
        conn.close()
    return [_ticket_from_row(r) for r in rows]


# ============ Assignees ============

def create_assignee(name, department='', phone='', is_active=True, created_at=None) -> dict:
    conn = get_conn()
    try:
        cur = conn.execute(
            'INSERT INTO assignees (name, department, phone, is_active, created_at) VALUES (?, ?, ?, ?, ?)',
            (name, department, phone, 1 if is_active else 0, created_at or now_iso()))
        conn.commit()
        assignee_id = cur.lastrowid
    finally:
        conn.close()
    return get_assignee(assignee_id)


def get_assignee(assignee_id):
    conn = get_conn()
    try:
        row = conn.execute('SELECT * FROM assignees WHERE id = ?', (assignee_id,)).fetchone()
    finally:
        conn.close()
    return _bool_row(row)


def list_assignees(include_inactive=True):
    sql = 'SELECT * FROM assignees'
    if not include_inactive:
        sql += ' WHERE is_active = 1'
    conn = get_conn()
    try:
        rows = conn.execute(sql + ' ORDER BY name').fetchall()
    finally:
        conn.close()
    return [_bool_row(r) for r in rows]


def list_active_assignees():
    """Active assignees, earliest registered first."""
    conn = get_conn()
    try:
        rows = conn.execute('SELECT * FROM assignees WHERE is_active = 1 ORDER BY created_at, id').fetchall()
    finally:
        conn.close()
    return [_bool_row(r) for r in rows]


def set_assignee_active(assignee_id, is_active: bool):
    conn = get_conn()
    try:
        conn.execute('UPDATE assignees SET is_active = ? WHERE id = ?', (1 if is_active else 0, assignee_id))
        conn.commit()
    finally:
        conn.close()


def get_assignment_statistics(terminal_statuses):
    terminal = list(terminal_statuses)
    conn = get_conn()
    try:
        rows = conn.execute(
            f'''SELECT a.id, a.name, a.department, a.is_active,
                       COUNT(t.id) AS total_tickets,
                       COALESCE(SUM(CASE WHEN t.id IS NOT NULL
                                          AND t.status NOT IN ({_placeholders(terminal)})
                                     THEN 1 ELSE 0 END), 0) AS active_tickets
                FROM assignees a
                LEFT JOIN tickets t ON t.assigned_to_id = a.id
                GROUP BY a.id
                ORDER BY a.created_at, a.id''',
            terminal).fetchall()
    finally:
        conn.close()
    return [{
        'assignee_id': r['id'],
        'assignee_name': r['name'],
        'department': r['department'],
        'is_active': bool(r['is_active']),
        'total_tickets': r['total_tickets'],
        'active_tickets': r['active_tickets'],
    } for r in rows]


# ============ Dropdown Options ============

def list_dropdown_options(dropdown_type=None, include_inactive=False):
    clauses, params = [], []
    if dropdown_type:
        clauses.append('dropdown_type = ?')
        params.append(dropdown_type)
    if not include_inactive:
        clauses.append('is_active = 1')
    sql = 'SELECT * FROM ticket_dropdown'
    if clauses:
        sql += ' WHERE ' + ' AND '.join(clauses)
    sql += ' ORDER BY dropdown_type, sort_order, value'
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [_bool_row(r) for r in rows]


def find_option(dropdown_type, value):
    conn = get_conn()
    try:
        row = conn.execute(
            'SELECT * FROM ticket_dropdown WHERE dropdown_type = ? AND value = ? AND is_active = 1',
            (dropdown_type, value)).fetchone()
    finally:
        conn.close()
    return _bool_row(row)


def find_option_by_id(option_id):
    conn = get_conn()
    try:
        row = conn.execute('SELECT * FROM ticket_dropdown WHERE id = ?', (option_id,)).fetchone()
    finally:
        conn.close()
    return _bool_row(row)


def add_dropdown_option(dropdown_type, value, parent_id=None, sort_order=0, is_active=True) -> dict:
    conn = get_conn()
    try:
        cur = conn.execute(
            '''INSERT INTO ticket_dropdown (dropdown_type, value, parent_id, is_active, sort_order, created_at)
               VALUES (?, ?, ?, ?, ?, ?)''',
            (dropdown_type, value, parent_id, 1 if is_active else 0, sort_order, now_iso()))
        conn.commit()
        option_id = cur.lastrowid
    finally:
        conn.close()
    return find_option_by_id(option_id)


def update_dropdown_option(option_id, updates: dict) -> dict:
    allowed = [c for c in ('value', 'parent_id', 'sort_order', 'is_active') if c in updates]
    if allowed:
        values = [(1 if updates[c] else 0) if c == 'is_active' else updates[c] for c in allowed]
        conn = get_conn()
        try:
            conn.execute(f"UPDATE ticket_dropdown SET {', '.join(f'{c} = ?' for c in allowed)} WHERE id = ?",
                         values + [option_id])
            conn.commit()
        finally:
            conn.close()
    return find_option_by_id(option_id)


def deactivate_dropdown_option(option_id):
    update_dropdown_option(option_id, {'is_active': False})


# ============ Admins ============

def create_admin(login_id, password_hash, name='', access_level='admin') -> dict:
    conn = get_conn()
    try:
        conn.execute(
            'INSERT INTO admins (login_id, name, password_hash, access_level, is_active, created_at) VALUES (?, ?, ?, ?, 1, ?)',
            (login_id, name, password_hash, access_level, now_iso()))
        conn.commit()
    finally:
        conn.close()
    return get_admin_by_login(login_id)


def get_admin_by_login(login_id):
    conn = get_conn()
    try:
        row = conn.execute('SELECT * FROM admins WHERE login_id = ?', (login_id,)).fetchone()
    finally:
        conn.close()
    return _bool_row(row)
