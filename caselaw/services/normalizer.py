"""Map source-native payloads into canonical UnifiedResults.

One pure function per payload kind. Adapters hand payloads to
``normalize``, which dispatches on the tagged union, so the orchestrator
never sees a native schema. Local search results go to
``normalize_local`` directly because they carry a relevance score. Every
result gets a display name, the first citation (or the "No citation"
sentinel), a decision date, court, jurisdiction and a markup-free
snippet when the source offers anything to build one from.
"""

from __future__ import annotations

import re
from datetime import MINYEAR, date
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from caselaw.core.exceptions import MalformedResponseError
from caselaw.models.domain import (
    CaseBody,
    CaseRecord,
    Citation,
    CitationReference,
    DataSource,
    OpinionText,
    UnifiedResult,
)
from caselaw.models.payloads import (
    CapCaseBodyData,
    CapCitesTo,
    CaselawAccessCase,
    CourtListenerCluster,
    CourtListenerSearchHit,
    LocalCasePayload,
    RawSourcePayload,
)
from caselaw.utils.text_cleaning import clean_snippet, strip_html

if TYPE_CHECKING:
    from caselaw.models.domain import RelevanceScore

_PayloadT = TypeVar("_PayloadT", bound=BaseModel)

_COURTLISTENER_WEB = "https://www.courtlistener.com"
_PARTIAL_DATE_RE = re.compile(r"^(\d{4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?")
_UNKNOWN_CASE = "Unknown case"


def parse_payload(model: type[_PayloadT], data: Any, *, source: str) -> _PayloadT:
    """Validate a native dict into ``model`` or raise MalformedResponseError."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        msg = f"Unexpected {model.__name__} payload from {source}"
        raise MalformedResponseError(
            msg,
            source=source,
            details={"errors": exc.error_count(), "first_error": str(exc.errors()[0]["msg"])},
        ) from exc


def parse_decision_date(value: str | None) -> date | None:
    """Parse full or partial ISO dates ('1923', '1923-05', '1923-05-14').

    Placeholder years such as '0000-00-00' mean the date is unknown.
    """
    if not value:
        return None
    match = _PARTIAL_DATE_RE.match(value.strip())
    if match is None:
        return None
    year = int(match.group(1))
    if year < MINYEAR:
        return None
    month = int(match.group(2) or 1)
    day = int(match.group(3) or 1)
    try:
        return date(year, month, day)
    except ValueError:
        return date(year, 1, 1)


def _cap_body(data: CapCaseBodyData | None) -> CaseBody | None:
    if data is None:
        return None
    return CaseBody(
        judges=data.judges,
        parties=data.parties,
        attorneys=data.attorneys,
        opinions=[
            OpinionText(type=op.type, author=op.author, text=strip_html(op.text))
            for op in data.opinions
        ],
        head_matter=strip_html(data.head_matter),
    )


def _cap_references(cites_to: list[CapCitesTo]) -> list[CitationReference]:
    return [
        CitationReference(
            cite=ref.cite,
            category=ref.category,
            case_ids=[str(cid) for cid in ref.case_ids],
            opinion_id=str(ref.opinion_id) if ref.opinion_id is not None else None,
        )
        for ref in cites_to
    ]


def _body_snippet(body: CaseBody | None) -> str:
    if body is None:
        return ""
    return clean_snippet(body.head_matter or body.opinion_text)


# ---------------------------------------------------------------------------
# Per-source mappers
# ---------------------------------------------------------------------------


def normalize_local(
    payload: LocalCasePayload,
    *,
    relevance: RelevanceScore | None = None,
    snippet: str | None = None,
) -> UnifiedResult:
    """Map a bulk-archive case file."""
    body = _cap_body(payload.casebody)
    record = CaseRecord(
        id=str(payload.id),
        name=payload.name or payload.name_abbreviation or _UNKNOWN_CASE,
        name_abbreviation=payload.name_abbreviation,
        decision_date=parse_decision_date(payload.decision_date),
        docket_number=payload.docket_number,
        court_name=payload.court.name,
        jurisdiction_name=payload.jurisdiction.name_long or payload.jurisdiction.name,
        jurisdiction_slug=payload.jurisdiction.slug or payload.jurisdiction_slug,
        citations=[Citation(type=c.type, cite=c.cite) for c in payload.citations if c.cite.strip()],
        body=body,
        cites_to=_cap_references(payload.cites_to),
    )
    return UnifiedResult(
        case=record,
        source=DataSource.LOCAL,
        display_name=record.short_name,
        citation=record.primary_citation,
        decision_date=record.decision_date,
        court=record.court_name,
        jurisdiction=record.jurisdiction_name,
        snippet=clean_snippet(snippet) if snippet else _body_snippet(body),
        relevance=relevance,
        raw=payload,
    )


def normalize_caselaw_access(payload: CaselawAccessCase) -> UnifiedResult:
    """Map a Caselaw Access Project ``/cases/`` object."""
    body = _cap_body(payload.casebody.data if payload.casebody else None)
    record = CaseRecord(
        id=str(payload.id),
        name=payload.name or payload.name_abbreviation or _UNKNOWN_CASE,
        name_abbreviation=payload.name_abbreviation,
        decision_date=parse_decision_date(payload.decision_date),
        docket_number=payload.docket_number,
        court_name=payload.court.name,
        jurisdiction_name=payload.jurisdiction.name_long or payload.jurisdiction.name,
        jurisdiction_slug=payload.jurisdiction.slug,
        citations=[Citation(type=c.type, cite=c.cite) for c in payload.citations if c.cite.strip()],
        body=body,
        cites_to=_cap_references(payload.cites_to),
        source_url=payload.frontend_url or payload.url,
    )
    snippet = clean_snippet(" ".join(payload.preview)) if payload.preview else _body_snippet(body)
    return UnifiedResult(
        case=record,
        source=DataSource.CASELAW_ACCESS,
        display_name=record.short_name,
        citation=record.primary_citation,
        decision_date=record.decision_date,
        court=record.court_name,
        jurisdiction=record.jurisdiction_name,
        snippet=snippet,
        url=record.source_url,
        raw=payload,
    )


def normalize_courtlistener_hit(payload: CourtListenerSearchHit) -> UnifiedResult:
    """Map a CourtListener search hit. Snippets carry <mark> highlighting."""
    url = f"{_COURTLISTENER_WEB}{payload.absolute_url}" if payload.absolute_url else ""
    record = CaseRecord(
        id=str(payload.cluster_id),
        name=payload.case_name_full or payload.case_name or _UNKNOWN_CASE,
        name_abbreviation=payload.case_name,
        decision_date=parse_decision_date(payload.date_filed),
        docket_number=payload.docket_number or "",
        court_name=payload.court,
        jurisdiction_name=payload.court_citation_string or payload.court_id,
        jurisdiction_slug=payload.court_id,
        citations=[Citation(type="reporter", cite=c) for c in payload.citation if c.strip()],
        source_url=url,
    )
    raw_snippet = payload.snippet or next(
        (op.snippet for op in payload.opinions if op.snippet), ""
    )
    return UnifiedResult(
        case=record,
        source=DataSource.COURTLISTENER,
        display_name=record.short_name,
        citation=record.primary_citation,
        decision_date=record.decision_date,
        court=record.court_name,
        jurisdiction=record.jurisdiction_name,
        snippet=clean_snippet(raw_snippet),
        cite_count=payload.cite_count,
        url=url,
        raw=payload,
    )


def normalize_courtlistener_cluster(payload: CourtListenerCluster) -> UnifiedResult:
    """Map a CourtListener opinion cluster (detail view)."""
    url = f"{_COURTLISTENER_WEB}{payload.absolute_url}" if payload.absolute_url else ""
    head_matter = payload.syllabus or payload.summary or payload.headnotes
    body = CaseBody(
        judges=[j.strip() for j in payload.judges.split(",") if j.strip()],
        attorneys=[a.strip() for a in payload.attorneys.split(";") if a.strip()],
        head_matter=strip_html(head_matter),
    )
    short_name = payload.case_name or payload.case_name_short
    record = CaseRecord(
        id=str(payload.id),
        name=payload.case_name_full or short_name or _UNKNOWN_CASE,
        name_abbreviation=short_name,
        decision_date=parse_decision_date(payload.date_filed),
        docket_number=payload.docket_number,
        court_name=payload.court_id,
        jurisdiction_name=payload.court_id,
        jurisdiction_slug=payload.court_id,
        citations=[Citation(type="reporter", cite=c.cite) for c in payload.citations],
        body=body,
        source_url=url,
    )
    return UnifiedResult(
        case=record,
        source=DataSource.COURTLISTENER,
        display_name=record.short_name,
        citation=record.primary_citation,
        decision_date=record.decision_date,
        court=record.court_name,
        jurisdiction=record.jurisdiction_name,
        snippet=_body_snippet(body),
        cite_count=payload.citation_count,
        url=url,
        raw=payload,
    )


def normalize(payload: RawSourcePayload) -> UnifiedResult:
    """Dispatch on the payload kind; every adapter lookup goes through here."""
    match payload:
        case LocalCasePayload():
            return normalize_local(payload)
        case CaselawAccessCase():
            return normalize_caselaw_access(payload)
        case CourtListenerSearchHit():
            return normalize_courtlistener_hit(payload)
        case CourtListenerCluster():
            return normalize_courtlistener_cluster(payload)
    msg = f"Unsupported payload type: {type(payload).__name__}"
    raise TypeError(msg)
