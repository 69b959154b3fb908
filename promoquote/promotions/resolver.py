"""Conflict resolver: order candidates and prune by exclusivity and stop rules."""
from typing import Iterable, List

from promoquote.promotions.eligibility import Candidate


def evaluation_key(candidate: Candidate):
    """Priority descending, then promotion id ascending."""
    return (-candidate.promotion.priority, candidate.promotion.id)


def resolve(candidates: Iterable[Candidate]) -> List[Candidate]:
    """
    Return the selected candidates in evaluation order.

    An exclusive promotion reached during the walk is selected alone and
    discards everything else, including promotions already selected.
    A promotion with stop_further_processing ends the walk after itself.
    """
    selected = []
    for candidate in sorted(candidates, key=evaluation_key):
        promotion = candidate.promotion
        if promotion.is_exclusive:
            return [candidate]
        selected.append(candidate)
        if promotion.stop_further_processing:
            break
    return selected
