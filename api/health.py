"""
Braindump Health Endpoints

- /health          the process answers
- /ready           the note store can serve queries (503 otherwise)
- /health/detailed store, embedding and source checks plus process resources

Each check returns a dict with a `status` of ok, disabled, unavailable,
missing or error; a failing check never raises out of the endpoint.
"""

import sys
import time
from datetime import datetime, timezone

import psutil
from flask import Blueprint, current_app, jsonify

health_bp = Blueprint('health', __name__)

STARTED_AT = time.time()


def _services():
    return current_app.extensions['braindump']


def _uptime():
    return int(time.time() - STARTED_AT)


def check_database():
    """Note count and sync cursor age of the configured store."""
    repo = _services()['repository']
    try:
        notes = repo.count()
        cursor = repo.get_cursor()
    except Exception as e:
        return {'status': 'error', 'path': str(repo.db_path), 'error': str(e)}

    result = {'status': 'ok', 'path': str(repo.db_path), 'notes': notes, 'last_sync': None}
    if cursor is not None:
        result['last_sync'] = cursor.isoformat()
        result['last_sync_age_seconds'] = int((datetime.now(timezone.utc) - cursor).total_seconds())
    return result


def check_embeddings():
    """Whether semantic ranking can run, and how many notes carry a vector."""
    services = _services()
    embedder = services.get('embedder')

    if embedder is None:
        return {'status': 'disabled'}
    if not getattr(embedder, 'available', True):
        return {'status': 'unavailable', 'model': getattr(embedder, 'model_name', None)}

    try:
        stats = services['repository'].get_stats()
    except Exception as e:
        return {'status': 'error', 'error': str(e)}

    return {
        'status': 'ok',
        'model': getattr(embedder, 'model_name', type(embedder).__name__),
        'embedded_notes': stats['embedded'],
        'total_notes': stats['total'],
    }


def check_source():
    """Whether /api/sync has somewhere to read from."""
    source = _services()['sync_service'].source
    if source is None:
        return {'status': 'disabled'}

    path = getattr(source, 'path', None)
    if path is not None and not path.exists():
        return {'status': 'missing', 'path': str(path)}
    return {'status': 'ok', 'type': type(source).__name__}


def process_resources():
    """Memory and thread use of this process."""
    try:
        process = psutil.Process()
        with process.oneshot():
            rss = process.memory_info().rss
            threads = process.num_threads()
        return {
            'rss_mb': round(rss / 1024 / 1024, 1),
            'threads': threads,
            'system_available_mb': round(psutil.virtual_memory().available / 1024 / 1024, 1),
        }
    except psutil.Error as e:
        return {'status': 'error', 'error': str(e)}


@health_bp.route('/health')
def liveness():
    return jsonify({'status': 'ok', 'uptime_seconds': _uptime()})


@health_bp.route('/ready')
def readiness():
    """200 once the note store answers, 503 before that."""
    database = check_database()
    ready = database['status'] == 'ok'

    body = {
        'status': 'ready' if ready else 'not_ready',
        'checks': {
            'database': database['status'],
            'embeddings': check_embeddings()['status'],
        }
    }
    return jsonify(body), 200 if ready else 503


@health_bp.route('/health/detailed')
def detailed_health():
    return jsonify({
        'status': 'ok',
        'uptime_seconds': _uptime(),
        'python_version': sys.version.split()[0],
        'checks': {
            'database': check_database(),
            'embeddings': check_embeddings(),
            'source': check_source(),
        },
        'resources': process_resources(),
    })
