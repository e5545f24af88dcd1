from flask import Blueprint, current_app, jsonify, request

from pingtrack.services.ping.time_tracker import TimeTracker

main = Blueprint('main', __name__)


def _scheduler():
    return current_app.extensions['ping_scheduler']


@main.route('/')
def index():
    return jsonify({'message': 'pingtrack is running'})


@main.route('/api/servers', methods=['GET'])
def list_servers():
    scheduler = _scheduler()
    last = scheduler.last_batch
    servers = []
    for registration in scheduler.roster:
        payload = registration.to_dict()
        record = last.updates.get(registration.server_id) if last else None
        payload['last'] = record.to_dict() if record else None
        servers.append(payload)
    return jsonify({
        'timestamp': TimeTracker.to_seconds(last.timestamp) if last else None,
        'running': scheduler.is_running,
        'servers': servers,
    })


@main.route('/api/servers/<int:server_id>/history', methods=['GET'])
def server_history(server_id):
    scheduler = _scheduler()
    registration = next((r for r in scheduler.roster if r.server_id == server_id), None)
    if registration is None:
        return jsonify({'error': 'Server not found'}), 404
    try:
        since = int(request.args.get('since', 0))
    except ValueError:
        return jsonify({'error': 'since must be an integer timestamp in milliseconds'}), 400

    store = current_app.extensions['ping_store']
    record = store.record(registration.ip)
    return jsonify({
        'serverId': server_id,
        'samples': [[ts, count] for ts, count in store.history(registration.ip, since)],
        'record': {'timestamp': record[0], 'playerCount': record[1]} if record else None,
    })
