"""Write-time derivation of searchable fields, and chunk-level scoring.

Pure logic, no FastAPI imports.  The document store calls into here on
``put``; the search and context layers call ``search_relevant_chunks``.
"""

import logging
from datetime import datetime, timezone

from app.config import settings
from app.models.schemas import Chunk, Document
from app.utils.text_utils import (
    content_hash,
    extract_terms,
    has_content_changed,
    normalize,
    query_terms,
    split_into_chunks,
    term_frequency,
)

logger = logging.getLogger(__name__)

EXACT_WEIGHT = 2.0
SUBSTRING_WEIGHT = 1.0
FREQUENCY_WEIGHT = 0.5


def segment_into_chunks(text: str, target_size: int | None = None) -> list[Chunk]:
    """Segment *text* into ordered chunks with their derived fields.

    Deterministic: the same text and size always produce the same chunks.
    Indices run 0..n-1.
    """
    target_size = target_size or settings.chunk_size
    min_length = settings.min_term_length

    chunks: list[Chunk] = []
    word_offset = 0
    for index, piece in enumerate(split_into_chunks(text, target_size)):
        word_count = len(piece.split())
        chunks.append(Chunk(
            index=index,
            content=piece,
            searchable_content=normalize(piece),
            terms=extract_terms(piece, min_length),
            word_count=word_count,
            term_frequency=term_frequency(piece, min_length),
            content_hash=content_hash(piece),
            start_word=word_offset,
            end_word=word_offset + word_count,
        ))
        word_offset += word_count
    return chunks


def needs_reindex(document: Document, previous: Document | None) -> bool:
    """True when *document* is new or its raw content differs from *previous*."""
    if previous is None:
        return True
    return has_content_changed(document.content, previous.metadata.content_hash)


def index_document(document: Document) -> Document:
    """Return a copy of *document* with every searchable field rebuilt."""
    min_length = settings.min_term_length
    chunks = segment_into_chunks(document.content)
    now = datetime.now(timezone.utc)

    metadata = document.metadata.model_copy(update={
        "total_words": sum(c.word_count for c in chunks),
        "total_chunks": len(chunks),
        "last_indexed": now,
        "content_hash": content_hash(document.content),
        "term_frequency": term_frequency(document.content, min_length),
    })

    indexed = document.model_copy(update={
        "searchable_content": normalize(document.content),
        "searchable_title": normalize(document.title),
        "terms": extract_terms(document.content, min_length),
        "title_terms": extract_terms(document.title, min_length),
        "chunks": chunks,
        "metadata": metadata,
    })

    logger.info(
        "Indexed document %s: %d chunks, %d words.",
        document.id, len(chunks), metadata.total_words,
        extra={"context": {
            "event": "indexing",
            "document_id": document.id,
            "chunks": len(chunks),
            "words": metadata.total_words,
        }},
    )
    return indexed


def carry_index(document: Document, previous: Document) -> Document:
    """Reuse *previous*'s content-derived fields for unchanged content.

    Title fields are cheap and always refreshed, since a rename does not
    touch the content hash.
    """
    return document.model_copy(update={
        "searchable_content": previous.searchable_content,
        "terms": previous.terms,
        "chunks": previous.chunks,
        "metadata": previous.metadata.model_copy(
            update={"language": document.metadata.language}
        ),
        "searchable_title": normalize(document.title),
        "title_terms": extract_terms(document.title, settings.min_term_length),
    })


def score_chunk(chunk: Chunk, terms: list[str]) -> float:
    """Blend of whole-word matches, substring matches and term frequency."""
    if not chunk.searchable_content:
        return 0.0

    tokens = chunk.searchable_content.split()
    score = 0.0
    for term in terms:
        exact = tokens.count(term)
        partial = chunk.searchable_content.count(term)
        frequency = chunk.term_frequency.get(term, 0)
        score += exact * EXACT_WEIGHT + partial * SUBSTRING_WEIGHT + frequency * FREQUENCY_WEIGHT
    return score


def search_relevant_chunks(
    document: Document,
    query: str,
    limit: int = 3,
) -> list[tuple[Chunk, float]]:
    """Top-*limit* chunks of *document* for *query*, best first.

    Ties keep original chunk order.  Returns an empty list when no chunk
    scores above zero.
    """
    terms = query_terms(query, settings.min_term_length)
    if not terms or not document.chunks or limit < 1:
        return []

    scored = [(chunk, score_chunk(chunk, terms)) for chunk in document.chunks]
    scored = [(chunk, score) for chunk, score in scored if score > 0]
    scored.sort(key=lambda pair: (-pair[1], pair[0].index))
    return scored[:limit]
