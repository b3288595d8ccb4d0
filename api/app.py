"""
Braindump API Server

Serves the local note index over HTTP:
- /api/search, /api/sync, /api/notes/<id>, /api/stats
- /health, /ready, /health/detailed

Usage:
    from api.app import create_app

    app = create_app()
    app.run(port=5055)
"""

import logging
import time
import uuid
from typing import Optional

from flask import Flask, g, request
from flask_cors import CORS

from core.config import BraindumpConfig, get_config
from database.repository import NoteRepository
from search.embeddings import get_embedding_engine
from search.hybrid_search import HybridSearcher
from sync.notes_sync import NotesSyncService
from sync.sources import JsonlNoteSource
from .error_handlers import setup_error_handlers
from .health import health_bp
from .routes import api

logger = logging.getLogger('braindump.requests')

_UNSET = object()


def create_app(
    config: Optional[BraindumpConfig] = None,
    repository: Optional[NoteRepository] = None,
    embedder=_UNSET,
    source=_UNSET
) -> Flask:
    """
    Build the Flask application.

    Args:
        config: Settings (defaults to get_config())
        repository: Note store (defaults to one at config.db_path)
        embedder: Query/note embedder; None disables semantic search.
                  Defaults to the shared sentence-transformers engine.
        source: Note source for /api/sync; None leaves sync unavailable.
                Defaults to a JSONL source at config.source_path, if set.
    """
    config = config or get_config()
    repository = repository or NoteRepository(config.db_path)

    if embedder is _UNSET:
        embedder = get_embedding_engine(config.embedding_model, enabled=config.embeddings_enabled)
    if source is _UNSET:
        source = JsonlNoteSource(config.source_path) if config.source_path else None

    app = Flask(__name__)
    CORS(app)

    app.extensions['braindump'] = {
        'config': config,
        'repository': repository,
        'embedder': embedder,
        'searcher': HybridSearcher(
            repository,
            embedder,
            rrf_k=config.rrf_k,
            snippet_length=config.snippet_length
        ),
        'sync_service': NotesSyncService(source, repository, embedder=embedder),
    }

    app.register_blueprint(api, url_prefix='/api')
    app.register_blueprint(health_bp)

    setup_error_handlers(app)
    setup_request_logging(app)

    return app


# =============================================================================
# Request Logging Middleware
# =============================================================================

QUIET_PATHS = ('/health', '/ready')


def setup_request_logging(app):
    """
    Tag each request with an id (the caller's X-Request-ID, or a new uuid),
    echo it on the response and log one line per request with its duration.
    Health check endpoints only log at DEBUG.
    """

    @app.before_request
    def start_timer():
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        g.started = time.perf_counter()

    @app.after_request
    def log_request(response):
        request_id = g.get('request_id') or uuid.uuid4().hex
        started = g.get('started')
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else 0

        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        elif request.path.startswith(QUIET_PATHS):
            level = logging.DEBUG
        else:
            level = logging.INFO

        logger.log(
            level,
            f'{request.method} {request.full_path.rstrip("?")} {status}',
            extra={'request_id': request_id, 'status_code': status, 'duration_ms': elapsed_ms}
        )

        response.headers['X-Request-ID'] = request_id
        return response
