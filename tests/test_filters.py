"""Unit tests for app/core/filters.py."""

import pytest

from app.core.errors import ValidationError
from app.core.filters import FilterManager
from app.models.schemas import Document, SearchFilters
from tests.conftest import OTHER_OWNER_ID, OWNER_ID

manager = FilterManager()


def _ids(scope, documents: list[Document]) -> list[str]:
    return [d.id for d in documents if scope(d)]


class TestOwnerScope:
    def test_only_owned_documents_by_default(self, indexed_documents):
        scope = manager.build_scope(OWNER_ID)
        assert _ids(scope, indexed_documents) == [
            "aaaaaaaaaaaaaaaaaaaaaaa2",
            "aaaaaaaaaaaaaaaaaaaaaaa1",
        ]

    def test_include_public(self, indexed_documents):
        scope = manager.build_scope(OWNER_ID, SearchFilters(include_public=True))
        assert "bbbbbbbbbbbbbbbbbbbbbbb1" in _ids(scope, indexed_documents)

    def test_other_owner_never_sees_private_documents(self, indexed_documents):
        scope = manager.build_scope(OTHER_OWNER_ID, SearchFilters(include_public=True))
        assert _ids(scope, indexed_documents) == ["bbbbbbbbbbbbbbbbbbbbbbb1"]

    def test_owned_only_drops_public(self, indexed_documents):
        scope = manager.build_scope(OWNER_ID, SearchFilters(include_public=True)).owned_only()
        assert "bbbbbbbbbbbbbbbbbbbbbbb1" not in _ids(scope, indexed_documents)

    def test_invalid_owner(self):
        with pytest.raises(ValidationError) as exc_info:
            manager.build_scope("not-an-id")
        assert exc_info.value.field == "user_id"


class TestFieldFilters:
    def test_file_types(self, indexed_documents):
        scope = manager.build_scope(OWNER_ID, SearchFilters(file_types=["docx"]))
        assert _ids(scope, indexed_documents) == ["aaaaaaaaaaaaaaaaaaaaaaa2"]

    def test_invalid_file_type(self):
        with pytest.raises(ValidationError) as exc_info:
            manager.build_scope(OWNER_ID, SearchFilters(file_types=["exe"]))
        assert exc_info.value.field == "file_types"

    def test_tags_match_any(self, indexed_documents):
        scope = manager.build_scope(OWNER_ID, SearchFilters(tags=["ml", "unused"]))
        assert _ids(scope, indexed_documents) == ["aaaaaaaaaaaaaaaaaaaaaaa1"]

    def test_date_range_inclusive_of_end_day(self, indexed_documents):
        scope = manager.build_scope(
            OWNER_ID, SearchFilters(date_from="2024-03-01", date_to="2024-03-01"),
        )
        assert _ids(scope, indexed_documents) == ["aaaaaaaaaaaaaaaaaaaaaaa1"]

    def test_inverted_date_range(self):
        with pytest.raises(ValidationError) as exc_info:
            manager.build_scope(OWNER_ID, SearchFilters(date_from="2024-03-05", date_to="2024-03-01"))
        assert exc_info.value.field == "date_range"

    def test_malformed_date(self):
        with pytest.raises(ValidationError) as exc_info:
            manager.build_scope(OWNER_ID, SearchFilters(date_from="yesterday"))
        assert exc_info.value.field == "date_from"


class TestCustomFilters:
    def test_dot_path(self, indexed_documents):
        scope = manager.build_scope(
            OWNER_ID, SearchFilters(custom_filters={"metadata.language": "vi"}),
        )
        assert len(_ids(scope, indexed_documents)) == 2

    def test_list_means_any(self, indexed_documents):
        scope = manager.build_scope(
            OWNER_ID, SearchFilters(custom_filters={"source_kind": ["docx", "txt"]}),
        )
        assert _ids(scope, indexed_documents) == ["aaaaaaaaaaaaaaaaaaaaaaa2"]

    def test_content_paths_rejected(self):
        with pytest.raises(ValidationError):
            manager.build_scope(OWNER_ID, SearchFilters(custom_filters={"content": "x"}))

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            manager.build_scope(OWNER_ID, SearchFilters(custom_filters={"nope": 1}))


class TestScopeProperties:
    def test_build_is_deterministic(self):
        filters = SearchFilters(tags=["b", "a"], file_types=["pdf"], date_from="2024-01-01")
        assert manager.build_scope(OWNER_ID, filters) == manager.build_scope(OWNER_ID, filters)

    def test_summarize(self):
        scope = manager.build_scope(OWNER_ID, SearchFilters(tags=["b", "a"], file_types=["pdf"]))
        summary = manager.summarize(scope)
        assert summary["tags"] == ["a", "b"]
        assert summary["file_types"] == ["pdf"]
        assert summary["include_public"] is False

    def test_describe(self):
        assert manager.describe(manager.build_scope(OWNER_ID)) == "no filters"
        scope = manager.build_scope(OWNER_ID, SearchFilters(tags=["ai"]))
        assert "tags: ai" in manager.describe(scope)

    def test_one_day_range_warns(self):
        scope = manager.build_scope(
            OWNER_ID, SearchFilters(date_from="2024-03-01T00:00:00", date_to="2024-03-01T06:00:00"),
        )
        assert manager.combination_warnings(scope)

    def test_no_warnings_for_plain_scope(self):
        assert manager.combination_warnings(manager.build_scope(OWNER_ID)) == []
