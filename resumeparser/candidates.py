"""
Projection of search-service responses and resume records into
CandidateResult objects.
"""

from typing import Any, Dict, List, Optional, Tuple

from .logger import get_logger
from .models import CandidateResult, ResumeRecord, SortKey
from .normalize import as_text_list, personal_field
from .ranking import rank_candidates

logger = get_logger()

SCORE_FIELDS = ("clarity_score", "experience_score", "loyalty_score", "reputation_score")
MAX_HIGHLIGHTS = 3


def average_score(score_card: Optional[Dict[str, Any]]) -> float:
    """Mean of the four sub-scores; missing card or scores count as 0."""
    if not score_card:
        return 0.0
    return sum(float(score_card.get(f) or 0) for f in SCORE_FIELDS) / len(SCORE_FIELDS)


def extract_highlights(details: Optional[str], limit: int = MAX_HIGHLIGHTS) -> Tuple[str, ...]:
    """Split the '*'-bulleted details string into at most `limit` highlights."""
    if not details:
        return ()
    items = [item.strip().lstrip(",").strip() for item in details.split("*")]
    return tuple(item for item in items if item)[:limit]


def _candidate(
    candidate_id: str,
    name: str,
    score_card: Optional[Dict[str, Any]],
    **extra: Any,
) -> CandidateResult:
    card = score_card or {}
    return CandidateResult(
        id=candidate_id,
        name=name,
        clarity_score=card.get("clarity_score"),
        experience_score=card.get("experience_score"),
        reputation_score=card.get("reputation_score"),
        loyalty_score=card.get("loyalty_score"),
        average_score=average_score(score_card),
        **extra,
    )


def candidates_from_search_response(payload: Dict[str, Any]) -> Tuple[List[CandidateResult], str]:
    """
    Convert a search-service response into candidates.

    Args:
        payload: {"answer": {"candidate_details": [...], "summary": str},
                  "results": [{"id", "score", "source_file", "text", "group"}, ...]}

    Returns:
        (candidates ranked by average score, summary text)
    """
    answer = payload.get("answer") or {}
    details = answer.get("candidate_details") or []
    if not details:
        logger.warning("No candidate details in search response")
        return [], answer.get("summary") or ""

    chunks = payload.get("results") or []
    candidates = []
    for index, detail in enumerate(details):
        file_name = detail.get("file_name")
        chunk = next((c for c in chunks if c.get("source_file") == file_name), None)
        avg = average_score(detail.get("score_card"))
        match_score = chunk.get("score") if chunk and chunk.get("score") is not None else avg / 10

        candidates.append(
            _candidate(
                str(chunk["id"]) if chunk and chunk.get("id") is not None else f"candidate-{index}",
                detail.get("candidate_name") or "",
                detail.get("score_card"),
                file_name=file_name,
                emails=tuple(as_text_list(detail.get("email"))),
                phones=tuple(as_text_list(detail.get("phone"))),
                match_score=match_score,
                job_profile=detail.get("job_profile"),
                total_experience=detail.get("total_experience"),
                college=tuple(as_text_list(detail.get("college"))),
                highlights=extract_highlights(detail.get("details")),
                details=detail.get("details"),
                group=chunk.get("group") if chunk else None,
                comment=detail.get("comment") or None,
                commented_at=detail.get("commented_at") or None,
            )
        )

    return rank_candidates(candidates, SortKey.SCORE), answer.get("summary") or ""


def candidate_from_record(record: ResumeRecord) -> CandidateResult:
    """Project a resume record (and its parsed payload) into a candidate."""
    parsed = record.parsed_data or {}
    name = personal_field(parsed, "name")
    return _candidate(
        record.remote_id or record.id,
        name if isinstance(name, str) and name else record.file_name,
        parsed.get("score_card"),
        file_name=record.file_name,
        emails=tuple(as_text_list(personal_field(parsed, "email"))),
        phones=tuple(as_text_list(personal_field(parsed, "phone"))),
        group=record.group_id,
    )
