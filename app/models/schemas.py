from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class SourceKind(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    TXT = "txt"
    URL = "url"
    YOUTUBE = "youtube"


class UsageCounter(str, Enum):
    QUIZ_GENERATED = "quiz_generated"
    FLASHCARDS_GENERATED = "flashcards_generated"
    MENTOR_QUESTIONS = "mentor_questions"


# ---------------------------------------------------------------------------
# Internal data models
# ---------------------------------------------------------------------------

class Chunk(BaseModel):
    """A contiguous piece of a document's text.

    ``index`` runs 0..n-1 inside a document with no gaps.  Every derived
    field is rebuilt together whenever the document is re-segmented.
    """

    index: int
    content: str
    searchable_content: str
    terms: list[str]
    word_count: int
    term_frequency: dict[str, int]
    content_hash: str
    start_word: int
    end_word: int


class DocumentMetadata(BaseModel):
    total_words: int = 0
    total_chunks: int = 0
    language: str = "vi"
    last_indexed: datetime | None = None
    content_hash: str = ""
    term_frequency: dict[str, int] = Field(default_factory=dict)


class UsageStats(BaseModel):
    quiz_generated: int = 0
    flashcards_generated: int = 0
    mentor_questions: int = 0
    last_used: datetime | None = None


class Document(BaseModel):
    """An owner-scoped unit of indexed content."""

    id: str
    owner_id: str
    title: str
    original_filename: str
    source_kind: SourceKind
    source_url: str | None = None

    content: str
    searchable_content: str = ""
    searchable_title: str = ""
    terms: list[str] = Field(default_factory=list)
    title_terms: list[str] = Field(default_factory=list)
    chunks: list[Chunk] = Field(default_factory=list)

    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    usage: UsageStats = Field(default_factory=UsageStats)
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False

    created_at: datetime
    updated_at: datetime


class ClickRecord(BaseModel):
    document_id: str
    position: int
    clicked_at: datetime


class SearchMetadata(BaseModel):
    strategy: str = "exact"
    response_time_ms: float = 0.0
    user_agent: str | None = None
    ip_address: str | None = None


class SearchHistoryEntry(BaseModel):
    """One executed query.  ``normalized_query`` is never empty."""

    id: str
    owner_id: str
    query: str
    normalized_query: str
    result_count: int = 0
    filters: dict[str, Any] = Field(default_factory=dict)
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)
    clicks: list[ClickRecord] = Field(default_factory=list)
    satisfaction: int | None = None
    context: str | None = None
    created_at: datetime


class Suggestion(BaseModel):
    """Ephemeral autocomplete candidate.  Never persisted."""

    text: str
    type: Literal["content", "history", "recent"]
    source: str
    frequency: float = 0.0
    relevance_score: float = 0.0
    last_searched: datetime | None = None


class ServiceHealth(BaseModel):
    status: Literal["healthy", "unhealthy", "unknown"] = "unknown"
    last_error: str | None = None
    last_check: datetime | None = None


class OperationStats(BaseModel):
    operation_type: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 1.0
    error_rate: float = 0.0
    average_duration_ms: float = 0.0
    slow_operations: int = 0
    slow_operation_rate: float = 0.0
    is_performing_well: bool = True


# ---------------------------------------------------------------------------
# Shared request / response pieces
# ---------------------------------------------------------------------------

class SearchFilters(BaseModel):
    """Raw filter input.  Validated and compiled by the filter manager."""

    file_types: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None
    include_public: bool = False
    custom_filters: dict[str, Any] = Field(default_factory=dict)


class PaginationMeta(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class MatchDetail(BaseModel):
    strategy: str
    term: str
    match_type: str     # "word", "substring", "phrase", "fuzzy" or "chunk"
    score: float
    matched: str | None = None
    chunk_index: int | None = None


class SearchResultItem(BaseModel):
    document_id: str
    title: str
    highlighted_title: str
    original_filename: str
    source_kind: SourceKind
    tags: list[str]
    is_public: bool
    created_at: datetime
    score: float
    strategy: str
    snippet: str
    match_details: list[MatchDetail]
    usage: UsageStats


class SearchMetrics(BaseModel):
    response_time_ms: float
    strategies: list[str]
    total_candidates: int
    total_results: int
    fallback_used: bool = False


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------

class DocumentCreateRequest(BaseModel):
    """Request body for POST /api/documents."""

    title: str
    content: str
    source_kind: str = "txt"
    original_filename: str | None = None
    source_url: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False
    language: str | None = None


class DocumentUpdateRequest(BaseModel):
    """Request body for PUT /api/documents/{id}.  Omitted fields are kept."""

    title: str | None = None
    content: str | None = None
    tags: list[str] | None = None
    is_public: bool | None = None


class UsageRequest(BaseModel):
    counter: UsageCounter


class IngestResponse(BaseModel):
    """Returned after a document is created or re-indexed."""

    document_id: str
    title: str
    chunk_count: int
    word_count: int
    status: str     # "completed" or "unchanged"
    message: str


class DocumentSummary(BaseModel):
    id: str
    title: str
    original_filename: str
    source_kind: SourceKind
    source_url: str | None
    tags: list[str]
    is_public: bool
    total_words: int
    total_chunks: int
    language: str
    last_indexed: datetime | None
    usage: UsageStats
    created_at: datetime
    updated_at: datetime


class DocumentDetail(DocumentSummary):
    content: str


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary]
    pagination: PaginationMeta


class SearchResponse(BaseModel):
    """Returned from GET /api/search."""

    query: str
    normalized_query: str
    results: list[SearchResultItem]
    pagination: PaginationMeta
    metrics: SearchMetrics
    filters: dict[str, Any]
    warnings: list[str] = Field(default_factory=list)


class AdvancedSearchRequest(BaseModel):
    """Request body for POST /api/search/advanced."""

    query: str
    filters: SearchFilters = Field(default_factory=SearchFilters)
    strategies: list[str] = Field(default_factory=lambda: ["exact", "fuzzy"])
    sort_by: str = "relevance"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10


class ParsedQuery(BaseModel):
    phrases: list[str] = Field(default_factory=list)
    and_terms: list[str] = Field(default_factory=list)
    or_terms: list[str] = Field(default_factory=list)
    not_terms: list[str] = Field(default_factory=list)


class AdvancedSearchResponse(BaseModel):
    query: str
    parsed_query: ParsedQuery
    results: list[SearchResultItem]
    pagination: PaginationMeta
    metrics: SearchMetrics
    filters: dict[str, Any]
    sort_by: str
    sort_order: str


class ContextRequest(BaseModel):
    """Request body for POST /api/search/context."""

    query: str | None = None
    max_chunks: int = 5
    max_context_length: int = 3000
    filters: SearchFilters = Field(default_factory=SearchFilters)
    usage_counter: UsageCounter | None = None


class ContextSource(BaseModel):
    document_id: str
    title: str
    chunk_index: int
    score: float


class ContextResponse(BaseModel):
    query: str
    context: str
    sources: list[ContextSource]
    total_chunks: int
    relevant_chunks: int
    response_time_ms: float
    fallback_used: bool = False


class RecordSearchRequest(BaseModel):
    query: str
    result_count: int = 0
    filters: dict[str, Any] = Field(default_factory=dict)
    strategy: str = "exact"
    response_time_ms: float = 0.0
    context: str | None = None


class ClickRequest(BaseModel):
    query: str
    document_id: str
    position: int = 0


class FeedbackRequest(BaseModel):
    query: str
    rating: int


class AckResponse(BaseModel):
    success: bool
    message: str


class SuggestionResponse(BaseModel):
    query: str
    suggestions: list[Suggestion]
    count: int
    response_time_ms: float


class HistoryItem(BaseModel):
    id: str
    query: str
    normalized_query: str
    result_count: int
    strategy: str
    click_count: int
    satisfaction: int | None
    created_at: datetime


class HistoryResponse(BaseModel):
    entries: list[HistoryItem]
    pagination: PaginationMeta


class SearchAnalytics(BaseModel):
    time_window_days: int
    total_searches: int = 0
    unique_query_count: int = 0
    avg_result_count: float = 0.0
    avg_satisfaction: float | None = None
    total_clicks: int = 0
    click_through_rate: float = 0.0


class PopularTerm(BaseModel):
    query: str
    count: int
    last_searched: datetime


class CacheStats(BaseModel):
    entries: int
    hits: int
    misses: int
    hit_rate: float
    max_entries: int
    ttl_seconds: float


class HealthResponse(BaseModel):
    """Returned from GET /api/health."""

    status: str     # "healthy" or "degraded"
    is_healthy: bool
    services: dict[str, ServiceHealth]
    performance: dict[str, OperationStats]
    documents_count: int
    history_count: int
    suggestion_cache: CacheStats
    timestamp: datetime
