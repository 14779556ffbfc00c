"""Ordering of candidate results by a selectable dimension."""

from typing import Callable, Dict, List, Sequence, Union

from .logger import get_logger
from .models import CandidateResult, SortKey

logger = get_logger()

SCORE_ATTRIBUTES: Dict[SortKey, str] = {
    SortKey.SCORE: "average_score",
    SortKey.CLARITY: "clarity_score",
    SortKey.EXPERIENCE: "experience_score",
    SortKey.REPUTATION: "reputation_score",
    SortKey.LOYALTY: "loyalty_score",
}


def parse_sort_key(value: Union[SortKey, str]) -> SortKey:
    if isinstance(value, SortKey):
        return value
    try:
        return SortKey(value.strip().lower())
    except ValueError:
        choices = ", ".join(k.value for k in SortKey)
        raise ValueError(f"Unknown sort key {value!r}. Use one of: {choices}")


def _sort_value(key: SortKey) -> Callable[[CandidateResult], object]:
    if key == SortKey.NAME:
        return lambda c: (c.name or "").casefold()
    attribute = SCORE_ATTRIBUTES[key]
    # negated so a plain ascending sort puts the highest score first
    return lambda c: -(getattr(c, attribute) or 0)


def rank_candidates(
    candidates: Sequence[CandidateResult],
    sort_key: Union[SortKey, str] = SortKey.SCORE,
) -> List[CandidateResult]:
    """
    Return a new list ordered by sort_key.

    Scores sort descending with missing values as 0; names sort ascending
    and case-insensitively. Ties keep their input order.
    """
    key = parse_sort_key(sort_key)
    ranked = sorted(candidates, key=_sort_value(key))
    logger.debug("Ranked candidates", sort_key=key.value, count=len(ranked))
    return ranked
