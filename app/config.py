from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    index_dir: str = "./indexes"
    persistence_enabled: bool = True

    chunk_size: int = 300
    min_term_length: int = 2
    default_language: str = "vi"

    search_timeout_seconds: float = 30.0
    advanced_search_timeout_seconds: float = 45.0
    context_timeout_seconds: float = 30.0
    suggestion_timeout_seconds: float = 5.0
    fallback_timeout_seconds: float = 10.0
    fallback_workers: int = 8

    default_min_score: float = 0.1
    max_search_results: int = 1000
    fuzzy_max_distance: int = 2
    fuzzy_min_similarity: float = 0.6
    fuzzy_max_terms: int = 5000
    fuzzy_weight: float = 0.7

    suggestion_max: int = 10
    suggestion_hard_cap: int = 20
    suggestion_min_query_length: int = 2
    suggestion_cache_ttl_seconds: float = 300.0
    suggestion_cache_max_entries: int = 1000
    suggestion_time_window_days: int = 30

    history_retention_days: int = 365
    maintenance_interval_seconds: float = 3600.0
    click_window_minutes: int = 60
    feedback_window_hours: int = 24

    search_rate_limit: int = 60
    suggestion_rate_limit: int = 120
    rate_limit_window_seconds: float = 60.0

    slow_operation_ms: float = 5000.0
    slow_query_ms: float = 2000.0
    error_rate_threshold: float = 0.1
    slow_rate_threshold: float = 0.2
    monitor_window: int = 1000

    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "./logs"
    log_file_name: str = "search.log"
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5
    log_query_preview_chars: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
