"""
Braindump API

Flask blueprint exposing the local note index:
- Hybrid search
- Incremental sync
- Note lookup
- Store statistics

Usage:
    from api.routes import api
    app.register_blueprint(api, url_prefix='/api')
"""

import logging

from flask import Blueprint, current_app, jsonify

from core.errors import NotFoundError
from .error_handlers import int_query_param, require_query_param

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)

MAX_LIMIT = 100


def get_services():
    """Services registered by create_app()."""
    return current_app.extensions['braindump']


# =============================================================================
# Search Endpoints
# =============================================================================

@api.route('/search')
def search():
    """
    Hybrid lexical + semantic note search.

    Query params:
        q: Search query
        limit: Maximum results (default from config, capped at 100)
    """
    services = get_services()

    query = require_query_param('q')
    limit = int_query_param('limit', services['config'].default_limit, minimum=0, maximum=MAX_LIMIT)

    results = services['searcher'].search(query, limit=limit)

    return jsonify({
        'results': [r.to_dict() for r in results],
        'total': len(results),
        'query': query,
        'limit': limit,
    })


# =============================================================================
# Sync Endpoints
# =============================================================================

@api.route('/sync', methods=['POST'])
def sync():
    """Run one incremental sync pass and return its counts."""
    report = get_services()['sync_service'].sync()
    return jsonify(report.to_dict())


# =============================================================================
# Note Endpoints
# =============================================================================

@api.route('/notes/<path:note_id>')
def get_note(note_id):
    """Get a stored note by id."""
    note = get_services()['repository'].get(note_id)
    if note is None:
        raise NotFoundError("Note not found", note_id=note_id)
    return jsonify(note.to_dict())


@api.route('/stats')
def stats():
    """Store statistics."""
    return jsonify(get_services()['repository'].get_stats())
