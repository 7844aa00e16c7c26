"""Tests for SourceRepository."""

import json
from datetime import datetime, timezone

import pytest

from feedpulse.sources.repository import SourceRepository

POLLED = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def source_row() -> dict:
    return {
        "id": "src-1",
        "type": "github",
        "identifier": "python/cpython:releases",
        "config": '{"per_page": 10}',
        "last_polled_at": None,
        "created_at": POLLED,
    }


class TestSourceRepository:
    @pytest.mark.asyncio
    async def test_create(self, mock_database, source_row):
        mock_database.fetchrow.return_value = source_row

        source = await SourceRepository(mock_database).create(
            "github", "python/cpython:releases", {"per_page": 10}
        )

        assert source.id == "src-1"
        assert source.config == {"per_page": 10}
        assert source.last_polled_at is None
        args = mock_database.fetchrow.call_args.args
        assert args[1:3] == ("github", "python/cpython:releases")
        assert json.loads(args[3]) == {"per_page": 10}

    @pytest.mark.asyncio
    async def test_list_stale_orders_never_polled_first(self, mock_database, source_row):
        mock_database.fetch.return_value = [source_row]

        sources = await SourceRepository(mock_database).list_stale(POLLED, limit=10)

        assert [s.id for s in sources] == ["src-1"]
        sql, cutoff, limit = mock_database.fetch.call_args.args
        assert "last_polled_at IS NULL OR last_polled_at < $1" in sql
        assert "NULLS FIRST" in sql
        assert (cutoff, limit) == (POLLED, 10)

    @pytest.mark.asyncio
    async def test_mark_polled_is_monotonic(self, mock_database):
        mock_database.fetchval.return_value = POLLED

        stored = await SourceRepository(mock_database).mark_polled("src-1", POLLED)

        assert stored == POLLED
        sql = mock_database.fetchval.call_args.args[0]
        assert "GREATEST" in sql

    @pytest.mark.asyncio
    async def test_list_sources_filters_by_type(self, mock_database):
        await SourceRepository(mock_database).list_sources(source_type="rss", limit=5)

        sql, *params = mock_database.fetch.call_args.args
        assert "WHERE type = $1" in sql
        assert params == ["rss", 5, 0]

    @pytest.mark.asyncio
    async def test_list_sources_unfiltered(self, mock_database):
        await SourceRepository(mock_database).list_sources()

        sql, *params = mock_database.fetch.call_args.args
        assert "WHERE" not in sql
        assert params == [50, 0]

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, mock_database):
        assert await SourceRepository(mock_database).get_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, mock_database):
        mock_database.execute.return_value = "DELETE 1"
        assert await SourceRepository(mock_database).delete("src-1") is True
