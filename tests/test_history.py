"""Unit tests for app/core/history.py and app/storage/history_store.py."""

from datetime import timedelta

import pytest

from app.core.errors import ValidationError
from app.core.history import SearchHistoryService
from app.storage.history_store import SearchHistoryStore
from tests.conftest import BASE_TIME, OTHER_OWNER_ID, OWNER_ID

DOC_ID = "aaaaaaaaaaaaaaaaaaaaaaa1"


class FakeClock:
    def __init__(self, now=BASE_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> SearchHistoryService:
    return SearchHistoryService(SearchHistoryStore(), clock=clock)


class TestRecordSearch:
    def test_appends_normalized_entry(self, service):
        entry = service.record_search(OWNER_ID, "  Học Máy ", 3)
        assert entry.query == "Học Máy"
        assert entry.normalized_query == "hoc may"
        assert entry.result_count == 3
        assert entry.created_at == BASE_TIME

    def test_zero_results_recorded(self, service):
        service.record_search(OWNER_ID, "nothing", 0)
        assert len(service.entries(OWNER_ID)) == 1

    def test_rejects_empty_query(self, service):
        with pytest.raises(ValidationError):
            service.record_search(OWNER_ID, "!!!", 1)

    def test_append_only_order(self, service, clock):
        for query in ("one", "two", "three"):
            service.record_search(OWNER_ID, query, 1)
            clock.advance(minutes=1)
        assert [e.query for e in service.entries(OWNER_ID)] == ["one", "two", "three"]


class TestRecordClick:
    def test_attaches_to_latest_matching_entry(self, service, clock):
        service.record_search(OWNER_ID, "neural", 2)
        clock.advance(minutes=5)
        latest = service.record_search(OWNER_ID, "Neural", 2)
        clock.advance(minutes=5)

        assert service.record_click(OWNER_ID, "neural", DOC_ID, position=1) is True
        entries = {e.id: e for e in service.entries(OWNER_ID)}
        assert len(entries[latest.id].clicks) == 1
        assert entries[latest.id].clicks[0].position == 1

    def test_outside_window_is_dropped(self, service, clock):
        service.record_search(OWNER_ID, "neural", 2)
        clock.advance(minutes=61)
        assert service.record_click(OWNER_ID, "neural", DOC_ID) is False

    def test_other_owner_is_dropped(self, service):
        service.record_search(OWNER_ID, "neural", 2)
        assert service.record_click(OTHER_OWNER_ID, "neural", DOC_ID) is False

    def test_invalid_document_id(self, service):
        with pytest.raises(ValidationError):
            service.record_click(OWNER_ID, "neural", "bad-id")


class TestUpdateSatisfaction:
    def test_sets_rating(self, service, clock):
        service.record_search(OWNER_ID, "neural", 2)
        clock.advance(hours=23)
        assert service.update_satisfaction(OWNER_ID, "neural", 4) is True
        assert service.entries(OWNER_ID)[0].satisfaction == 4

    def test_outside_window(self, service, clock):
        service.record_search(OWNER_ID, "neural", 2)
        clock.advance(hours=25)
        assert service.update_satisfaction(OWNER_ID, "neural", 4) is False

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_rejects_out_of_range(self, service, rating):
        service.record_search(OWNER_ID, "neural", 2)
        with pytest.raises(ValidationError):
            service.update_satisfaction(OWNER_ID, "neural", rating)


class TestAnalytics:
    def test_aggregates(self, service, clock):
        service.record_search(OWNER_ID, "neural", 4)
        service.record_search(OWNER_ID, "Neural", 2)
        service.record_search(OWNER_ID, "graphs", 0)
        service.record_click(OWNER_ID, "neural", DOC_ID)
        service.record_click(OWNER_ID, "graphs", DOC_ID)
        service.update_satisfaction(OWNER_ID, "graphs", 5)

        analytics = service.get_analytics(OWNER_ID, 30)
        assert analytics.total_searches == 3
        assert analytics.unique_query_count == 2
        assert analytics.avg_result_count == 2.0
        assert analytics.avg_satisfaction == 5.0
        assert analytics.total_clicks == 2
        assert analytics.click_through_rate == pytest.approx(2 / 3, abs=1e-4)

    def test_empty(self, service):
        analytics = service.get_analytics(OWNER_ID, 7)
        assert analytics.total_searches == 0
        assert analytics.avg_satisfaction is None

    def test_window_excludes_old_entries(self, service, clock):
        service.record_search(OWNER_ID, "old", 1)
        clock.advance(days=10)
        service.record_search(OWNER_ID, "new", 1)
        assert service.get_analytics(OWNER_ID, 7).total_searches == 1

    def test_invalid_window(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.get_analytics(OWNER_ID, 0)
        assert exc_info.value.field == "time_window"


class TestHistoryReads:
    def test_get_history_newest_first(self, service, clock):
        for query in ("one", "two", "three"):
            service.record_search(OWNER_ID, query, 1)
            clock.advance(minutes=1)
        entries, total = service.get_history(OWNER_ID, page=1, limit=2)
        assert total == 3
        assert [e.query for e in entries] == ["three", "two"]

    def test_recent_searches_are_distinct(self, service, clock):
        for query in ("alpha", "beta", "alpha"):
            service.record_search(OWNER_ID, query, 1)
            clock.advance(minutes=1)
        assert [e.query for e in service.recent_searches(OWNER_ID)] == ["alpha", "beta"]

    def test_popular_terms(self, service, clock):
        for query in ("alpha", "beta", "alpha"):
            service.record_search(OWNER_ID, query, 1)
            clock.advance(minutes=1)
        popular = service.popular_terms(OWNER_ID)
        assert [(p.query, p.count) for p in popular] == [("alpha", 2), ("beta", 1)]

    def test_purge(self, service, clock):
        service.record_search(OWNER_ID, "ancient", 1)
        clock.advance(days=400)
        service.record_search(OWNER_ID, "fresh", 1)
        assert service.purge() == 1
        assert [e.query for e in service.entries(OWNER_ID)] == ["fresh"]


class TestHistoryStorePersistence:
    def test_save_and_load(self, service, tmp_path):
        service.record_search(OWNER_ID, "neural", 2)
        service.record_search(OTHER_OWNER_ID, "graphs", 1)
        service.store.save(str(tmp_path))

        restored = SearchHistoryStore()
        restored.load(str(tmp_path))
        assert len(restored) == 2
        assert restored.entries_for_owner(OWNER_ID)[0].normalized_query == "neural"
