"""
HTTP API for Braindump.

Usage:
    from api import create_app

    app = create_app()
"""

from .app import create_app

__all__ = [
    'create_app',
]
