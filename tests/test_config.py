"""Unit tests for app/config.py."""

from app.config import Settings, settings


class TestSettingsDefaults:
    """Verify the defaults the search pipeline relies on."""

    def test_chunk_size(self):
        s = Settings()
        assert s.chunk_size == 300

    def test_min_term_length(self):
        s = Settings()
        assert s.min_term_length == 2

    def test_timeouts(self):
        s = Settings()
        assert s.search_timeout_seconds == 30.0
        assert s.advanced_search_timeout_seconds == 45.0
        assert s.suggestion_timeout_seconds == 5.0

    def test_fuzzy_defaults(self):
        s = Settings()
        assert s.fuzzy_max_distance == 2
        assert s.fuzzy_min_similarity == 0.6
        assert s.fuzzy_weight == 0.7

    def test_suggestion_limits(self):
        s = Settings()
        assert s.suggestion_max == 10
        assert s.suggestion_hard_cap == 20
        assert s.suggestion_cache_ttl_seconds == 300.0

    def test_history_windows(self):
        s = Settings()
        assert s.click_window_minutes == 60
        assert s.feedback_window_hours == 24
        assert s.history_retention_days == 365

    def test_log_rotation(self):
        s = Settings()
        assert s.log_max_bytes == 10 * 1024 * 1024
        assert s.log_backup_count == 5

    def test_index_dir(self):
        s = Settings()
        assert s.index_dir == "./indexes"


class TestSettingsOverrides:
    """Verify settings can be overridden via constructor and environment."""

    def test_override_chunk_size(self):
        s = Settings(chunk_size=500)
        assert s.chunk_size == 500

    def test_override_rate_limit(self):
        s = Settings(search_rate_limit=5)
        assert s.search_rate_limit == 5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SUGGESTION_MAX", "7")
        assert Settings().suggestion_max == 7


class TestModuleLevelSingleton:
    def test_settings_is_instance(self):
        assert isinstance(settings, Settings)

    def test_test_environment_disables_side_effects(self):
        assert settings.log_to_file is False
        assert settings.persistence_enabled is False
