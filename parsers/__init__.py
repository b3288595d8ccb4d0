"""
Content parsers for Braindump.

Usage:
    from parsers import normalize

    text = normalize(note_html)
"""

from .notes_html import HTMLNormalizer, normalize

__all__ = [
    'HTMLNormalizer',
    'normalize',
]
