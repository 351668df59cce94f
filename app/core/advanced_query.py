"""Boolean query syntax: quoted phrases, AND / OR / NOT.

Pure logic, no FastAPI imports.

    machine "neural network" OR deep NOT biology

Unmarked terms are AND-ed.  ``OR`` joins the terms on either side into
the OR group; ``NOT`` excludes the term that follows.
"""

import logging
import re
from collections.abc import Sequence

from app.core.errors import ValidationError
from app.core.resilience import Deadline
from app.core.search import MIN_FUZZY_TERM_LENGTH, FuzzyStrategy, SearchHit
from app.models.schemas import Document, MatchDetail, ParsedQuery
from app.utils.text_utils import normalize

logger = logging.getLogger(__name__)

_PHRASE_RE = re.compile(r'"([^"]+)"')
_OPERATORS = {"AND", "OR", "NOT"}

PHRASE_WEIGHT = 2.0
WORD_WEIGHT = 1.0
SUBSTRING_WEIGHT = 0.5
OR_WEIGHT = 0.8


def parse_advanced_query(query: str) -> ParsedQuery:
    """Split *query* into phrases and AND / OR / NOT term groups.

    Terms and phrases come back normalized.  Raises ``ValidationError``
    if nothing positive remains to search for.
    """
    phrases = [normalize(p) for p in _PHRASE_RE.findall(query or "")]
    phrases = [p for p in dict.fromkeys(phrases) if p]
    remainder = _PHRASE_RE.sub(" ", query or "")

    and_terms: list[str] = []
    or_terms: list[str] = []
    not_terms: list[str] = []

    pending = "AND"
    last_and: str | None = None
    for token in remainder.split():
        if token in _OPERATORS:
            if token == "OR" and last_and is not None and last_and in and_terms:
                and_terms.remove(last_and)
                or_terms.append(last_and)
            pending = token
            continue

        for term in normalize(token).split():
            if pending == "NOT":
                not_terms.append(term)
                last_and = None
            elif pending == "OR":
                or_terms.append(term)
                last_and = None
            else:
                and_terms.append(term)
                last_and = term
        pending = "AND"

    parsed = ParsedQuery(
        phrases=phrases,
        and_terms=list(dict.fromkeys(and_terms)),
        or_terms=list(dict.fromkeys(or_terms)),
        not_terms=list(dict.fromkeys(not_terms)),
    )
    if not (parsed.phrases or parsed.and_terms or parsed.or_terms):
        raise ValidationError("query", "Query must contain at least one search term.")
    return parsed


class AdvancedMatcher:
    """Evaluates a ``ParsedQuery`` against documents."""

    def __init__(self, fuzzy: FuzzyStrategy | None = None) -> None:
        self.fuzzy = fuzzy or FuzzyStrategy()

    def evaluate(
        self, document: Document, parsed: ParsedQuery,
    ) -> tuple[float, list[MatchDetail]] | None:
        """Score *document*, or None if it fails any clause."""
        text = f"{document.searchable_title} {document.searchable_content}"
        words = set(document.terms)
        words.update(document.title_terms)

        if any(term in words for term in parsed.not_terms):
            return None

        score = 0.0
        details: list[MatchDetail] = []

        for phrase in parsed.phrases:
            if phrase not in text:
                return None
            score += PHRASE_WEIGHT
            details.append(MatchDetail(
                strategy="advanced", term=phrase, match_type="phrase", score=PHRASE_WEIGHT,
            ))

        by_length: dict[int, list[str]] | None = None
        for term in parsed.and_terms:
            detail = _direct_match(term, words, text, 1.0)
            if detail is None:
                if len(term) < MIN_FUZZY_TERM_LENGTH:
                    return None
                if by_length is None:
                    by_length = _bucket(words, self.fuzzy.max_terms)
                matched, value = self.fuzzy.best_match(term, by_length)
                if matched is None or value < self.fuzzy.min_similarity:
                    return None
                detail = MatchDetail(
                    strategy="advanced", term=term, match_type="fuzzy",
                    score=round(value * self.fuzzy.weight, 4), matched=matched,
                )
            score += detail.score
            details.append(detail)

        if parsed.or_terms:
            or_details = [
                d for d in (_direct_match(t, words, text, OR_WEIGHT) for t in parsed.or_terms)
                if d is not None
            ]
            if not or_details:
                return None
            score += sum(d.score for d in or_details)
            details.extend(or_details)

        if score <= 0:
            return None
        return score, details

    def match(
        self,
        parsed: ParsedQuery,
        candidates: Sequence[Document],
        deadline: Deadline | None = None,
    ) -> list[SearchHit]:
        deadline = deadline or Deadline.unbounded("advanced_search")
        hits: list[SearchHit] = []
        for document in candidates:
            deadline.check()
            outcome = self.evaluate(document, parsed)
            if outcome is not None:
                score, details = outcome
                hits.append(SearchHit(document, round(score, 4), "advanced", details))
        return hits


def sort_hits(hits: list[SearchHit], sort_by: str, sort_order: str) -> list[SearchHit]:
    """Order *hits* by relevance, date, title or usage.

    Ties fall back to newest first, then document id.
    """
    ordered = sorted(hits, key=lambda h: h.document.id)
    ordered.sort(key=lambda h: h.document.created_at, reverse=True)

    reverse = sort_order == "desc"
    if sort_by == "relevance":
        ordered.sort(key=lambda h: h.score, reverse=reverse)
    elif sort_by == "date":
        ordered.sort(key=lambda h: h.document.created_at, reverse=reverse)
    elif sort_by == "title":
        ordered.sort(key=lambda h: h.document.title.casefold(), reverse=reverse)
    elif sort_by == "usage":
        ordered.sort(key=lambda h: _usage_total(h.document), reverse=reverse)
    else:
        raise ValidationError("sort_by", f"Invalid sort field '{sort_by}'.", sort_by)
    return ordered


def _usage_total(document: Document) -> int:
    usage = document.usage
    return usage.quiz_generated + usage.flashcards_generated + usage.mentor_questions


def _direct_match(term: str, words: set[str], text: str, weight: float) -> MatchDetail | None:
    if term in words:
        return MatchDetail(
            strategy="advanced", term=term, match_type="word", score=WORD_WEIGHT * weight,
        )
    if term in text:
        return MatchDetail(
            strategy="advanced", term=term, match_type="substring",
            score=SUBSTRING_WEIGHT * weight,
        )
    return None


def _bucket(words: set[str], max_terms: int) -> dict[int, list[str]]:
    by_length: dict[int, list[str]] = {}
    for word in sorted(words)[:max_terms]:
        by_length.setdefault(len(word), []).append(word)
    return by_length


advanced_matcher = AdvancedMatcher()
