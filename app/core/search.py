"""Multi-strategy document search.

Pure logic, no FastAPI imports.  Each strategy scores one document against
a prepared query on its own; the engine keeps, per document, the best
score across the requested strategies and ranks with NumPy.

Strategies:
  exact     whole-word matches (1.0 per term) above substring matches (0.5),
            plus a bonus when a multi-term query appears as a phrase.
  fuzzy     bounded Levenshtein against the document's term list, so typos
            still match.  Cost per document is capped by ``fuzzy_max_terms``.
  semantic  chunk-level context retrieval: the document scores by its most
            relevant chunks.  There is no embedding model involved.
"""

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from app.config import settings
from app.core.errors import ValidationError
from app.core.indexer import search_relevant_chunks
from app.core.resilience import Deadline
from app.models.schemas import Document, MatchDetail
from app.utils.text_utils import normalize, query_terms, similarity

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+")

# Fuzzy matching on very short terms produces noise ("ai" ~ "at").
MIN_FUZZY_TERM_LENGTH = 3


@dataclass(frozen=True)
class PreparedQuery:
    raw: str
    normalized: str
    terms: tuple[str, ...]
    case_sensitive: bool = False


@dataclass
class SearchHit:
    document: Document
    score: float
    strategy: str
    match_details: list[MatchDetail] = field(default_factory=list)


def prepare_query(query: str, case_sensitive: bool = False) -> PreparedQuery:
    if case_sensitive:
        terms = tuple(dict.fromkeys(_WORD_RE.findall(query or "")))
    else:
        terms = tuple(query_terms(query, settings.min_term_length))
    return PreparedQuery(
        raw=query or "",
        normalized=normalize(query),
        terms=terms,
        case_sensitive=case_sensitive,
    )


class SearchStrategy(Protocol):
    name: str

    def score(
        self, document: Document, query: PreparedQuery,
    ) -> tuple[float, list[MatchDetail]]: ...


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class ExactStrategy:
    name = "exact"

    WORD_SCORE = 1.0
    SUBSTRING_SCORE = 0.5
    PHRASE_BONUS = 0.5

    def score(
        self, document: Document, query: PreparedQuery,
    ) -> tuple[float, list[MatchDetail]]:
        if query.case_sensitive:
            text = f"{document.title}\n{document.content}"
            words = set(_WORD_RE.findall(text))
            phrase = query.raw.strip()
        else:
            text = f"{document.searchable_title} {document.searchable_content}"
            words = set(document.terms)
            words.update(document.title_terms)
            phrase = query.normalized

        if not text.strip():
            return 0.0, []

        total = 0.0
        details: list[MatchDetail] = []
        for term in query.terms:
            if term in words:
                total += self.WORD_SCORE
                details.append(MatchDetail(
                    strategy=self.name, term=term, match_type="word", score=self.WORD_SCORE,
                ))
            elif term in text:
                total += self.SUBSTRING_SCORE
                details.append(MatchDetail(
                    strategy=self.name, term=term, match_type="substring",
                    score=self.SUBSTRING_SCORE,
                ))

        if len(query.terms) > 1 and phrase and phrase in text:
            total += self.PHRASE_BONUS
            details.append(MatchDetail(
                strategy=self.name, term=phrase, match_type="phrase", score=self.PHRASE_BONUS,
            ))
        return total, details


class FuzzyStrategy:
    name = "fuzzy"

    def __init__(
        self,
        max_distance: int | None = None,
        min_similarity: float | None = None,
        max_terms: int | None = None,
        weight: float | None = None,
    ) -> None:
        self.max_distance = max_distance if max_distance is not None else settings.fuzzy_max_distance
        self.min_similarity = min_similarity if min_similarity is not None else settings.fuzzy_min_similarity
        self.max_terms = max_terms or settings.fuzzy_max_terms
        self.weight = weight if weight is not None else settings.fuzzy_weight

    def best_match(self, term: str, by_length: dict[int, list[str]]) -> tuple[str | None, float]:
        """Most similar document term for *term*, compared only within the length band."""
        best_term, best_similarity = None, 0.0
        for length in range(len(term) - self.max_distance, len(term) + self.max_distance + 1):
            for candidate in by_length.get(length, ()):
                value = similarity(term, candidate, self.max_distance)
                if value > best_similarity:
                    best_term, best_similarity = candidate, value
                    if value == 1.0:
                        return best_term, best_similarity
        return best_term, best_similarity

    def score(
        self, document: Document, query: PreparedQuery,
    ) -> tuple[float, list[MatchDetail]]:
        if query.case_sensitive:
            terms = [t for t in query.terms if len(t) >= MIN_FUZZY_TERM_LENGTH]
            words = _WORD_RE.findall(f"{document.title}\n{document.content}")
        else:
            terms = [t.lower() for t in query.terms if len(t) >= MIN_FUZZY_TERM_LENGTH]
            words = document.title_terms + document.terms
        if not terms:
            return 0.0, []

        doc_terms = list(dict.fromkeys(words))[: self.max_terms]
        if not doc_terms:
            return 0.0, []

        by_length: dict[int, list[str]] = {}
        for candidate in doc_terms:
            by_length.setdefault(len(candidate), []).append(candidate)

        total = 0.0
        details: list[MatchDetail] = []
        for term in terms:
            matched, value = self.best_match(term, by_length)
            if matched is not None and value >= self.min_similarity:
                contribution = value * self.weight
                total += contribution
                details.append(MatchDetail(
                    strategy=self.name, term=term, match_type="fuzzy",
                    score=round(contribution, 4), matched=matched,
                ))
        return total, details


class SemanticStrategy:
    """Context retrieval: score a document by its best-matching chunks."""

    name = "semantic"

    def __init__(self, chunks_per_document: int = 3) -> None:
        self.chunks_per_document = chunks_per_document

    def score(
        self, document: Document, query: PreparedQuery,
    ) -> tuple[float, list[MatchDetail]]:
        ranked = search_relevant_chunks(document, query.raw, self.chunks_per_document)
        if query.case_sensitive:
            ranked = [
                (chunk, score) for chunk, score in ranked
                if any(term in chunk.content for term in query.terms)
            ]
        if not ranked:
            return 0.0, []
        total = math.log1p(sum(score for _, score in ranked))
        details = [
            MatchDetail(
                strategy=self.name, term=query.normalized, match_type="chunk",
                score=round(score, 4), chunk_index=chunk.index,
            )
            for chunk, score in ranked
        ]
        return total, details


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SearchEngine:
    def __init__(self, strategies: Sequence[SearchStrategy] | None = None) -> None:
        if strategies is None:
            strategies = [ExactStrategy(), FuzzyStrategy(), SemanticStrategy()]
        self.strategies: dict[str, SearchStrategy] = {s.name: s for s in strategies}

    def search(
        self,
        query: str,
        candidates: Sequence[Document],
        strategies: Sequence[str] | None = None,
        case_sensitive: bool = False,
        max_results: int | None = None,
        min_score: float | None = None,
        deadline: Deadline | None = None,
    ) -> list[SearchHit]:
        """Score *candidates* with every requested strategy and rank them.

        Per document the best score across strategies wins.  Order is
        score desc, then ``created_at`` desc, then document id, so the
        same query over the same candidate set always ranks identically.
        """
        names = list(strategies or ("exact", "fuzzy"))
        for name in names:
            if name not in self.strategies:
                raise ValidationError("strategies", f"Unknown strategy '{name}'.", name)

        max_results = max_results if max_results is not None else settings.max_search_results
        min_score = min_score if min_score is not None else settings.default_min_score
        deadline = deadline or Deadline.unbounded("search")

        prepared = prepare_query(query, case_sensitive)
        if not prepared.terms or not candidates or max_results < 1:
            return []

        n = len(candidates)
        best = np.zeros(n, dtype=np.float64)
        best_strategy = [""] * n
        best_details: list[list[MatchDetail]] = [[] for _ in range(n)]

        for i, document in enumerate(candidates):
            deadline.check()
            for name in names:
                score, details = self.strategies[name].score(document, prepared)
                if score > best[i]:
                    best[i] = score
                    best_strategy[i] = name
                    best_details[i] = details

        created = np.array([d.created_at.timestamp() for d in candidates], dtype=np.float64)
        id_rank = np.argsort(np.argsort(np.array([d.id for d in candidates])))

        # np.lexsort sorts by the last key first.
        order = np.lexsort((id_rank, -created, -best))
        keep = (best > 0) & (best >= min_score)

        hits = [
            SearchHit(
                document=candidates[i],
                score=round(float(best[i]), 4),
                strategy=best_strategy[i],
                match_details=best_details[i],
            )
            for i in order
            if keep[i]
        ]
        return hits[:max_results]


def substring_search(
    query: str,
    candidates: Sequence[Document],
    max_results: int | None = None,
) -> list[SearchHit]:
    """Plain substring search used when the engine itself fails.

    Reads only the raw title and content, so it keeps working even when
    derived index fields are missing or inconsistent.
    """
    max_results = max_results if max_results is not None else settings.max_search_results
    normalized = normalize(query)
    terms = query_terms(query, settings.min_term_length)
    if not normalized:
        return []

    scored: list[tuple[float, Document]] = []
    for document in candidates:
        text = normalize(f"{document.title} {document.content}")
        score = float(sum(1 for term in terms if term in text))
        if normalized in text:
            score += 1.0
        if score > 0:
            scored.append((score, document))

    scored.sort(key=lambda pair: pair[1].id)
    scored.sort(key=lambda pair: (pair[0], pair[1].created_at), reverse=True)
    return [
        SearchHit(
            document=document,
            score=score,
            strategy="fallback",
            match_details=[MatchDetail(
                strategy="fallback", term=normalized, match_type="substring", score=score,
            )],
        )
        for score, document in scored[:max_results]
    ]


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
search_engine = SearchEngine()
