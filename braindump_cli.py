#!/usr/bin/env python3
"""
Braindump Command Line

Local search over your notes: sync them into a SQLite index, then search
with hybrid keyword + semantic ranking.

Usage:
    # Pull changed notes from an export into the local index
    braindump sync --source exports/notes.jsonl

    # Search
    braindump search "grocery list" --limit 5
    braindump search "grocery list" --json

    # Inspect
    braindump get <note-id>
    braindump stats

    # Re-normalize / re-embed stored notes after an upgrade
    braindump reindex

    # Serve the HTTP API
    braindump serve --port 5055
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from core.config import BraindumpConfig, load_config
from core.errors import BraindumpError, NotFoundError
from core.logging_config import setup_logging
from database.repository import NoteRepository
from search.embeddings import get_embedding_engine
from search.hybrid_search import HybridSearcher
from sync.notes_sync import NotesSyncService
from sync.sources import JsonlNoteSource

logger = logging.getLogger('braindump.cli')


def _embedder(config: BraindumpConfig):
    return get_embedding_engine(config.embedding_model, enabled=config.embeddings_enabled)


def _print_json(data):
    print(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False))


# =============================================================================
# Commands
# =============================================================================

def cmd_sync(args, config: BraindumpConfig) -> int:
    source_path = args.source or config.source_path
    source = JsonlNoteSource(source_path) if source_path else None

    repo = NoteRepository(config.db_path)
    service = NotesSyncService(source, repo, embedder=_embedder(config))

    if not args.json:
        print("Syncing notes to local index...")

    report = service.sync(show_progress=not args.json)
    pruned = service.prune() if args.prune else None

    if args.json:
        output = report.to_dict()
        if pruned is not None:
            output['pruned'] = pruned
        _print_json(output)
    else:
        print("\nSync complete:")
        print(f"  Processed: {report.processed}")
        print(f"  Skipped (no content): {report.skipped}")
        print(f"  Errors: {report.errors}")
        if pruned is not None:
            print(f"  Pruned: {pruned}")

    return 0


def cmd_search(args, config: BraindumpConfig) -> int:
    repo = NoteRepository(config.db_path)
    searcher = HybridSearcher(
        repo,
        _embedder(config),
        rrf_k=config.rrf_k,
        snippet_length=config.snippet_length
    )

    limit = args.limit if args.limit is not None else config.default_limit
    results = searcher.search(args.query, limit=limit)

    if args.json:
        _print_json([r.to_dict() for r in results])
        return 0

    if not results:
        print(f"No results found for '{args.query}'.")
        print("\nTip: Run 'braindump sync' first to index your notes.")
        return 0

    print(f"\nSearch results for '{args.query}':\n")
    for i, result in enumerate(results, 1):
        print(f"{i}. {result.title} [{result.folder}]")
        print(f"   Score: {result.score:.4f}")
        preview = result.snippet.replace('\n', ' ')[:80]
        print(f"   {preview}...")
        print()

    return 0


def cmd_get(args, config: BraindumpConfig) -> int:
    repo = NoteRepository(config.db_path)
    note = repo.get(args.id)
    if note is None:
        raise NotFoundError(f"Note not found: {args.id}", note_id=args.id)

    if args.json:
        _print_json(note.to_dict())
    else:
        print(f"# {note.title}  [{note.folder}]")
        if note.modified_at:
            print(f"Modified: {note.modified_at.isoformat()}")
        print()
        print(note.normalized_content)

    return 0


def cmd_stats(args, config: BraindumpConfig) -> int:
    stats = NoteRepository(config.db_path).get_stats()

    if args.json:
        _print_json(stats)
        return 0

    print(f"Notes: {stats['total']} ({stats['embedded']} with embeddings)")
    print(f"Last sync: {stats['last_sync'] or 'never'}")
    for folder, count in stats['by_folder'].items():
        print(f"  {folder}: {count}")
    return 0


def cmd_reindex(args, config: BraindumpConfig) -> int:
    repo = NoteRepository(config.db_path)
    service = NotesSyncService(None, repo, embedder=_embedder(config))

    report = service.reindex(show_progress=not args.json)
    repo.rebuild_index()

    if args.json:
        _print_json(report.to_dict())
    else:
        print(f"Reindexed {report.processed} notes ({report.errors} errors)")
    return 0


def cmd_serve(args, config: BraindumpConfig) -> int:
    from api.app import create_app

    app = create_app(config)
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


# =============================================================================
# Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='braindump',
        description="Local hybrid search over your notes"
    )
    parser.add_argument('--config', '-c', help="Config file (default: ~/.braindump/config.yaml)")
    parser.add_argument('--db', help="Database path (overrides config)")
    parser.add_argument('--verbose', '-v', action='store_true', help="Debug logging")

    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_json_flag(sub):
        sub.add_argument('--json', '-j', action='store_true', help="Output as JSON")

    sync_parser = subparsers.add_parser('sync', help="Sync changed notes into the local index")
    sync_parser.add_argument('--source', '-s', help="Notes export (JSONL); overrides config source_path")
    sync_parser.add_argument('--prune', action='store_true', help="Delete notes missing from the source")
    add_json_flag(sync_parser)
    sync_parser.set_defaults(func=cmd_sync)

    search_parser = subparsers.add_parser('search', help="Search notes (hybrid FTS + semantic)")
    search_parser.add_argument('query', help="Search query")
    search_parser.add_argument('--limit', '-l', type=int, help="Maximum results to return")
    add_json_flag(search_parser)
    search_parser.set_defaults(func=cmd_search)

    get_parser = subparsers.add_parser('get', help="Show a stored note")
    get_parser.add_argument('id', help="Note id")
    add_json_flag(get_parser)
    get_parser.set_defaults(func=cmd_get)

    stats_parser = subparsers.add_parser('stats', help="Index statistics")
    add_json_flag(stats_parser)
    stats_parser.set_defaults(func=cmd_stats)

    reindex_parser = subparsers.add_parser('reindex', help="Re-normalize and re-embed stored notes")
    add_json_flag(reindex_parser)
    reindex_parser.set_defaults(func=cmd_reindex)

    serve_parser = subparsers.add_parser('serve', help="Run the HTTP API")
    serve_parser.add_argument('--host', default='127.0.0.1')
    serve_parser.add_argument('--port', type=int, default=5055)
    serve_parser.add_argument('--debug', action='store_true')
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config, overrides={'db_path': args.db})
        setup_logging('DEBUG' if args.verbose else config.log_level, json_format=config.log_json)
        return args.func(args, config)
    except BraindumpError as e:
        logger.debug(f"{e.error_type}: {e.details}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
