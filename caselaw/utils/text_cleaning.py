"""Text cleaning utilities shared by the normalizer and the local scorer.

Snippets from remote sources arrive with highlight markup (``<mark>``,
``<em>``) and HTML entities; opinion bodies may be HTML or XML. Citation
strings are compared only after exact-string normalization. Uses only
stdlib.
"""

import html
import re
import unicodedata

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_END_RE = re.compile(r"</(p|div|li|tr|blockquote|h[1-6])>", re.IGNORECASE)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_ZERO_WIDTH_RE = re.compile(r"[\u200b\u200c\u200d\ufeff]")

DEFAULT_SNIPPET_CHARS = 240


def strip_html(text: str) -> str:
    """Remove HTML tags and unescape HTML entities.

    Block-level closing tags and <br> become newlines so paragraphs survive
    tag removal.
    """
    result = _BR_RE.sub("\n", text)
    result = _BLOCK_END_RE.sub("\n", result)
    result = _HTML_TAG_RE.sub("", result)
    return html.unescape(result)


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines included) into one space."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_snippet(text: str | None, max_chars: int = DEFAULT_SNIPPET_CHARS) -> str:
    """Strip markup from a display snippet and bound its length."""
    if not text:
        return ""
    cleaned = collapse_whitespace(_ZERO_WIDTH_RE.sub("", strip_html(text)))
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[: max_chars - 1].rstrip() + "…"


def normalize_citation(cite: str) -> str:
    """Dedup key for a citation: NFKC, lower-case, whitespace collapsed.

    ``" 539  U.S.  558 "`` and ``"539 u.s. 558"`` produce the same key.
    """
    return collapse_whitespace(unicodedata.normalize("NFKC", cite)).lower()


def excerpt_around(text: str, term: str, max_chars: int = DEFAULT_SNIPPET_CHARS) -> str:
    """Return a window of ``text`` centred on the first occurrence of ``term``.

    Falls back to the start of the text when the term is absent.
    """
    flat = collapse_whitespace(text)
    if not flat:
        return ""
    idx = flat.lower().find(term.lower()) if term else -1
    if idx < 0 or len(flat) <= max_chars:
        return clean_snippet(flat, max_chars)

    start = max(idx - max_chars // 3, 0)
    end = min(start + max_chars, len(flat))
    window = flat[start:end].strip()
    prefix = "…" if start > 0 else ""
    suffix = "…" if end < len(flat) else ""
    return f"{prefix}{window}{suffix}"
