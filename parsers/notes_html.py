"""
Normalizer for note HTML bodies.

Notes arrive as the lightweight HTML that note apps export (<div> per line,
<b>/<i> inline styling, <ul>/<li> checklists, <a href> links). This module
rewrites that markup into plain, Markdown-flavoured text suitable for
full-text indexing and embedding.

The rewrite is a fixed, ordered list of regex substitutions:

1. Strip document wrapper / metadata (doctype, <html>, <head>, <body>, ...)
2. Bold and italic  -> **bold**, _italic_
3. Headings h1-h6   -> "# " ... "###### "
4. Links            -> [text](url)
5. Lists            -> "- item" lines
6. p / div / br     -> newlines
7. Any remaining tag is dropped
8. Entities (&nbsp; &lt; &gt; &quot; &apos; &amp;) are decoded
9. Leading / trailing whitespace is trimmed

It is deliberately not a parser: unbalanced or malformed markup produces
imperfect text, never an exception. The generic tag strip must stay after the
structural rules, otherwise their markers would already be gone.

Usage:
    from parsers.notes_html import normalize

    text = normalize("<div><b>Groceries</b></div><ul><li>Milk</li></ul>")
    # '**Groceries**\n\n- Milk'
"""

import re
import logging
from typing import List, Tuple, Union

from core.errors import NormalizationError

logger = logging.getLogger(__name__)


_FLAGS = re.IGNORECASE | re.DOTALL

# Optional attributes after a tag name, e.g. <div class="x">.
_ATTRS = r'(?:\s[^>]*)?'


def _heading(match: re.Match) -> str:
    return '\n' + '#' * int(match.group(1)) + ' '


# (pattern, replacement) pairs, applied in order.
_RULES: List[Tuple[re.Pattern, object]] = [
    # 1. Wrapper and metadata sections
    (re.compile(r'<!DOCTYPE[^>]*>', _FLAGS), ''),
    (re.compile(r'<!--.*?-->', _FLAGS), ''),
    (re.compile(rf'<head{_ATTRS}>.*?</head\s*>', _FLAGS), ''),
    (re.compile(rf'<(style|script){_ATTRS}>.*?</\1\s*>', _FLAGS), ''),
    (re.compile(rf'<meta{_ATTRS}/?>', _FLAGS), ''),
    (re.compile(rf'</?(?:html|body){_ATTRS}>', _FLAGS), ''),

    # 2. Inline emphasis
    (re.compile(rf'</?(?:b|strong){_ATTRS}>', _FLAGS), '**'),
    (re.compile(rf'</?(?:i|em){_ATTRS}>', _FLAGS), '_'),

    # 3. Headings
    (re.compile(rf'<h([1-6]){_ATTRS}>', _FLAGS), _heading),
    (re.compile(r'</h[1-6]\s*>', _FLAGS), '\n'),

    # 4. Links
    # The URL may not contain quotes, so an unclosed anchor costs one scan.
    (re.compile(r'<a\s[^>]*?href\s*=\s*(["\'])([^"\']*)\1[^>]*>(.*?)</a\s*>', _FLAGS), r'[\3](\2)'),

    # 5. Lists
    (re.compile(rf'</?(?:ul|ol){_ATTRS}>', _FLAGS), '\n'),
    (re.compile(rf'<li{_ATTRS}>', _FLAGS), '- '),
    (re.compile(r'</li\s*>', _FLAGS), '\n'),

    # 6. Block containers and line breaks
    (re.compile(rf'</?(?:p|div){_ATTRS}>', _FLAGS), '\n'),
    (re.compile(rf'<br{_ATTRS}/?>', _FLAGS), '\n'),

    # 7. Everything else
    (re.compile(r'<[^>]+>'), ''),
]

# &amp; goes last so "&amp;lt;" decodes to the literal text "&lt;".
_ENTITIES = [
    ('&nbsp;', ' '),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&apos;', "'"),
    ('&#39;', "'"),
    ('&amp;', '&'),
]


class HTMLNormalizer:
    """
    Converts note HTML into plain structured text.

    Stateless; a single instance can be shared freely.
    """

    def normalize(self, markup: Union[str, bytes]) -> str:
        """
        Normalize an HTML note body.

        Args:
            markup: HTML as text, or UTF-8 encoded bytes

        Returns:
            Plain text with Markdown-style emphasis, headings, links and bullets

        Raises:
            NormalizationError: if bytes input is not valid UTF-8
        """
        if isinstance(markup, bytes):
            try:
                markup = markup.decode('utf-8')
            except UnicodeDecodeError as e:
                raise NormalizationError(
                    f"Note body is not valid UTF-8: {e.reason}",
                    position=e.start
                ) from e

        text = markup

        for pattern, replacement in _RULES:
            text = pattern.sub(replacement, text)

        for entity, char in _ENTITIES:
            text = text.replace(entity, char)

        return text.strip()

    __call__ = normalize


_default_normalizer = HTMLNormalizer()


def normalize(markup: Union[str, bytes]) -> str:
    """Normalize markup with the shared HTMLNormalizer."""
    return _default_normalizer.normalize(markup)
