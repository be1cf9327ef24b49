import logging
import sqlite3

import click
from flask import Flask, jsonify, request, g

import analytics
import assignment
import auth
import config
import database
import taxonomy
import tickets
from notifications import notifier
from scheduler import automation_scheduler
from storage import storage, Upload, AttachmentError

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger(__name__)

app = Flask(__name__)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


# ============ ERROR HANDLERS ============

@app.errorhandler(tickets.TicketError)
def handle_ticket_error(e):
    return jsonify({'error': str(e)}), e.status_code


@app.errorhandler(AttachmentError)
def handle_attachment_error(e):
    return jsonify({'error': f'File upload failed: {e}'}), e.status_code


@app.errorhandler(taxonomy.TaxonomyError)
def handle_taxonomy_error(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(auth.AuthError)
def handle_auth_error(e):
    return jsonify({'error': str(e)}), e.status_code


@app.errorhandler(sqlite3.Error)
def handle_database_error(e):
    logger.error('[Database Error] %s', e)
    return jsonify({'error': 'Database unavailable'}), 503


# ============ PUBLIC ROUTES ============

@app.route('/api/status')
def api_status():
    """Health check and integration status."""
    return jsonify({
        'status': 'running',
        's3_configured': storage.is_configured(),
        'whatsapp_configured': notifier.is_configured(),
        'auto_reassign_enabled': config.AUTO_REASSIGN_ENABLED,
        'terminal_statuses': config.TERMINAL_STATUSES,
        'scheduler_jobs': automation_scheduler.get_jobs_status()
    })


@app.route('/api/tickets', methods=['POST'])
def api_submit_ticket():
    """Submit a ticket. Accepts multipart (with 'files') or JSON."""
    if request.files or request.form:
        form = request.form.to_dict()
        uploads = [Upload(f.filename, f.mimetype, f.read()) for f in request.files.getlist('files') if f.filename]
    else:
        form = _json_body()
        uploads = []
    form.pop('assigned_to_id', None)

    ticket = tickets.submit_ticket(form, uploads)
    return jsonify({'success': True, 'ticket': ticket}), 201


@app.route('/api/tickets/lookup/<ticket_id>')
def api_lookup_ticket(ticket_id):
    """Submitter-facing status lookup by human-readable ticket id."""
    return jsonify(tickets.lookup_ticket(ticket_id))


@app.route('/api/dropdowns')
def api_dropdowns():
    """Active dropdown options grouped by type."""
    grouped = {}
    for option in database.list_dropdown_options():
        grouped.setdefault(option['dropdown_type'], []).append(option)
    return jsonify(grouped)


@app.route('/api/dropdowns/<dropdown_type>')
def api_dropdown_type(dropdown_type):
    """Options of one type, optionally only the children of a parent value."""
    parent_type = taxonomy.PARENT_TYPES.get(dropdown_type)
    parent_value = request.args.get('parent')
    if parent_value and parent_type:
        return jsonify(taxonomy.load_tree().children(parent_type, parent_value))
    return jsonify(database.list_dropdown_options(dropdown_type))


@app.route('/api/admin/login', methods=['POST'])
def api_admin_login():
    data = _json_body()
    admin = auth.authenticate(data.get('loginId'), data.get('password'))
    return jsonify({
        'success': True,
        'adminId': admin['id'],
        'token': auth.generate_token(admin),
        'message': 'Login successful'
    })


# ============ ADMIN ROUTES ============

@app.route('/api/admin/me')
@auth.require_admin
def api_admin_me():
    return jsonify(g.admin)


@app.route('/api/tickets')
@auth.require_admin
def api_list_tickets():
    """List tickets with filters, search, sorting and pagination."""
    filters = {k: request.args.get(k) for k in analytics.FILTER_FIELDS if request.args.get(k)}
    result = analytics.filter_tickets(database.list_tickets(), q=request.args.get('q', ''), **filters)
    result = analytics.sort_tickets(result, request.args.get('sort', 'created_time'),
                                    descending=request.args.get('order', 'desc').lower() != 'asc')
    return jsonify(analytics.paginate(result, _int_arg('page', 1), _int_arg('per_page', 20)))


@app.route('/api/tickets/<int:ticket_id>')
@auth.require_admin
def api_ticket_detail(ticket_id):
    return jsonify(tickets.get_ticket(ticket_id, with_urls=storage.is_configured()))


@app.route('/api/tickets/<int:ticket_id>', methods=['PATCH'])
@auth.require_admin
def api_update_ticket(ticket_id):
    return jsonify(tickets.update_ticket_fields(ticket_id, _json_body()))


@app.route('/api/tickets/<int:ticket_id>/disposition', methods=['POST'])
@auth.require_admin
def api_update_disposition(ticket_id):
    data = _json_body()
    return jsonify(tickets.update_disposition(ticket_id, data.get('disposition')))


@app.route('/api/tickets/<int:ticket_id>/issue-type', methods=['POST'])
@auth.require_admin
def api_update_issue_type(ticket_id):
    data = _json_body()
    return jsonify(tickets.update_issue_type_l2(ticket_id, data.get('issue_type_l2')))


@app.route('/api/tickets/<int:ticket_id>/assign', methods=['POST'])
@auth.require_admin
def api_assign_ticket(ticket_id):
    """Assign to the given assignee, or auto-assign when none is given."""
    assignee_id = _json_body().get('assignee_id')
    if assignee_id is not None:
        try:
            assignee_id = int(assignee_id)
        except (TypeError, ValueError):
            return jsonify({'error': 'assignee_id must be an integer'}), 400
    return jsonify(tickets.assign_ticket(ticket_id, assignee_id))


@app.route('/api/tickets/reassign-inactive', methods=['POST'])
@auth.require_admin
def api_reassign_inactive():
    count = assignment.reassign_from_inactive_assignees()
    return jsonify({'success': True, 'reassigned': count})


@app.route('/api/attachments/urls', methods=['POST'])
@auth.require_admin
def api_attachment_urls():
    attachments = _json_body().get('attachments')
    if not isinstance(attachments, list):
        return jsonify({'error': 'Attachments array is required'}), 400
    return jsonify({'success': True, 'data': storage.with_signed_urls(attachments)})


@app.route('/api/admin/dropdowns')
@auth.require_admin
def api_admin_dropdowns():
    """All options including inactive ones, for taxonomy management."""
    return jsonify(database.list_dropdown_options(request.args.get('type'), include_inactive=True))


@app.route('/api/admin/dropdowns', methods=['POST'])
@auth.require_admin
def api_add_dropdown():
    data = _json_body()
    dropdown_type, value = data.get('dropdown_type'), (data.get('value') or '').strip()
    if not value:
        return jsonify({'error': 'value required'}), 400
    tree = taxonomy.load_tree()
    taxonomy.validate_option(tree, dropdown_type, data.get('parent_id'))
    if tree.is_taken(dropdown_type, value):
        raise taxonomy.TaxonomyError(f'An active {dropdown_type} option {value!r} already exists')
    option = database.add_dropdown_option(dropdown_type, value, data.get('parent_id'), data.get('sort_order', 0))
    return jsonify(option), 201


@app.route('/api/admin/dropdowns/<int:option_id>', methods=['PATCH'])
@auth.require_admin
def api_update_dropdown(option_id):
    option = database.find_option_by_id(option_id)
    if option is None:
        return jsonify({'error': 'Option not found'}), 404
    data = _json_body()
    taxonomy.validate_option_update(taxonomy.load_tree(), option, data)
    return jsonify(database.update_dropdown_option(option_id, data))


@app.route('/api/admin/dropdowns/<int:option_id>', methods=['DELETE'])
@auth.require_admin
def api_deactivate_dropdown(option_id):
    if database.find_option_by_id(option_id) is None:
        return jsonify({'error': 'Option not found'}), 404
    database.deactivate_dropdown_option(option_id)
    return jsonify({'success': True, 'id': option_id, 'is_active': False})


@app.route('/api/assignees')
@auth.require_admin
def api_assignees():
    include_inactive = request.args.get('all', 'false').lower() == 'true'
    return jsonify(database.list_assignees(include_inactive=include_inactive))


@app.route('/api/assignees', methods=['POST'])
@auth.require_admin
def api_create_assignee():
    data = _json_body()
    if not (data.get('name') or '').strip():
        return jsonify({'error': 'name required'}), 400
    assignee = database.create_assignee(data['name'].strip(), data.get('department', ''), data.get('phone', ''))
    return jsonify(assignee), 201


@app.route('/api/assignees/<int:assignee_id>/deactivate', methods=['POST'])
@auth.require_admin
def api_deactivate_assignee(assignee_id):
    """Deactivate an assignee and move their open tickets to the active roster."""
    if database.get_assignee(assignee_id) is None:
        return jsonify({'error': 'Assignee not found'}), 404
    database.set_assignee_active(assignee_id, False)
    count = assignment.reassign_from_inactive_assignees()
    return jsonify({'success': True, 'assignee_id': assignee_id, 'reassigned': count})


@app.route('/api/assignees/<int:assignee_id>/activate', methods=['POST'])
@auth.require_admin
def api_activate_assignee(assignee_id):
    if database.get_assignee(assignee_id) is None:
        return jsonify({'error': 'Assignee not found'}), 404
    database.set_assignee_active(assignee_id, True)
    return jsonify({'success': True, 'assignee_id': assignee_id})


@app.route('/api/assignees/stats')
@auth.require_admin
def api_assignee_stats():
    return jsonify(database.get_assignment_statistics(config.TERMINAL_STATUSES))


@app.route('/api/analytics')
@auth.require_admin
def api_analytics():
    return jsonify(analytics.compute_analytics(
        database.list_tickets(),
        database.list_assignees(),
        start=request.args.get('start'),
        end=request.args.get('end'),
    ))


# ============ CLI ============

@app.cli.command('init-db')
def init_db_command():
    """Create the database tables."""
    database.init_db()
    click.echo(f'Initialised database at {database.DB_PATH}')


@app.cli.command('create-admin')
@click.argument('login_id')
@click.password_option()
@click.option('--name', default='')
def create_admin_command(login_id, password, name):
    """Create a dashboard admin account."""
    database.create_admin(login_id, auth.hash_password(password), name=name)
    click.echo(f'Created admin {login_id}')


if __name__ == '__main__':
    database.init_db()
    # Start background scheduler for automatic reassignment
    automation_scheduler.start(reassign_func=assignment.reassign_from_inactive_assignees)
    app.run(debug=True, port=5000)
