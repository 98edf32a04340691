"""Presentation helpers over canonical case records."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from caselaw.models.domain import CaseRecord

HOLDING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"we hold that",
        r"the court holds",
        r"it is held that",
        r"we conclude that",
        r"we find that",
        r"judgment is",
    )
]

MIN_HOLDING_CHARS = 50
MAX_HOLDING_CHARS = 500
MAX_HOLDINGS = 5

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def extract_key_holdings(record: CaseRecord, limit: int = MAX_HOLDINGS) -> list[str]:
    """Sentences from the opinions that read like holdings.

    A sentence qualifies when it contains one of the holding phrases and
    is between 50 and 500 characters long. Opinions are scanned in order.
    """
    if record.body is None:
        return []

    holdings: list[str] = []
    for opinion in record.body.opinions:
        for sentence in _SENTENCE_SPLIT_RE.split(opinion.text):
            sentence = " ".join(sentence.split())
            if not MIN_HOLDING_CHARS < len(sentence) < MAX_HOLDING_CHARS:
                continue
            if any(p.search(sentence) for p in HOLDING_PATTERNS):
                holdings.append(sentence)
                if len(holdings) >= limit:
                    return holdings
    return holdings


def format_case_for_display(record: CaseRecord) -> str:
    """One-line citation form: ``"Lawrence v. Texas, 539 U.S. 558 (2003-06-26)"``."""
    decided = record.decision_date.isoformat() if record.decision_date else "date unknown"
    return f"{record.short_name}, {record.primary_citation} ({decided})"
