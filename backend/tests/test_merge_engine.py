"""Tests for the merge engine: per-field re-parsing, residual extraction, upsert."""

from datetime import datetime
from unittest.mock import patch

import pytest

from app.ingestion import merge as merge_module
from app.ingestion.merge import MergeEngine, convert_row, decode_residual
from app.ingestion.normalizers import CellShape
from app.ingestion.protocols import ImportRun, StagingRecord


def stage(repo, run, records):
    with repo.transaction() as cursor:
        repo.insert_staging_batch(cursor, run.run_id, records)


def merge(repo, run):
    with repo.transaction() as cursor:
        return MergeEngine(repo).merge(cursor, run)


def staging_row(**values) -> dict:
    record = StagingRecord(**values)
    return {column: getattr(record, column) for column in record.column_names()}


class TestConvertRow:
    def test_typed_fields(self):
        outcome = convert_row(staging_row(
            id="x1",
            season_number="2",
            episode_number="10.0",
            countries="US,CA",
            updated="1700000000000",
            available_date="2023-05-01T00:00:00Z",
            ratings='[{"rating": "TV-PG"}]',
            youtube_video_ids='{"9287": "abc"}',
        ))
        values = outcome.values
        assert outcome.errors == []
        assert values["external_id"] == "x1"
        assert values["season_number"] == 2
        assert values["episode_number"] == 10
        assert values["countries"] == ["US", "CA"]
        assert values["updated_timestamp"] == 1700000000000
        assert values["available_date"] == datetime(2023, 5, 1)
        assert values["ratings"] == [{"rating": "TV-PG"}]
        assert values["youtube_video_ids"] == ["abc"]

    def test_malformed_fields_degrade_to_null(self):
        outcome = convert_row(staging_row(
            id="x1",
            title="Kept",
            season_number="not-a-number",
            ratings="{broken",
            pub_date="whenever",
        ))
        assert outcome.values["season_number"] is None
        assert outcome.values["ratings"] is None
        assert outcome.values["pub_date"] is None
        assert outcome.values["title"] == "Kept"
        assert {e.field for e in outcome.errors} == {"season_number", "ratings", "pub_date"}

    def test_residual_documents_extracted(self):
        outcome = convert_row(staging_row(
            id="x1",
            raw_row={
                "content": [{"url": "a.jpg"}],
                "thumbnails": [{"url": "t.jpg"}],
                "cbs": {"SeriesTitle": "Show"},
                "title": "ignored",
            },
        ))
        assert outcome.values["content"] == [{"url": "a.jpg"}]
        assert outcome.values["thumbnails"] == [{"url": "t.jpg"}]
        assert outcome.values["cbs"] == {"SeriesTitle": "Show"}
        assert outcome.values["ytcp"] is None
        assert outcome.values["pl2"] is None

    def test_unreadable_residual_is_empty(self):
        result = decode_residual("not json")
        assert result.value == {}
        assert result.error.field == "raw_row"

        outcome = convert_row(staging_row(id="x1", raw_row="not json"))
        assert outcome.values["content"] is None
        assert outcome.values["external_id"] == "x1"

    def test_structured_cells_dispatched_by_shape(self):
        normalizer = merge_module._NORMALIZER
        with patch.object(normalizer, "normalize", wraps=normalizer.normalize) as spy:
            convert_row(staging_row(
                id="x1",
                ratings='[{"rating": "TV-PG"}]',
                youtube_video_ids='{"9287": "abc"}',
                raw_row={"cbs": '{"SeriesTitle": "Show"}'},
            ))

        dispatched = {(c.args[2], c.args[1]) for c in spy.call_args_list}
        assert ("ratings", CellShape.JSON_DOCUMENT) in dispatched
        assert ("youtube_video_ids", CellShape.FLATTENED_ID_LIST) in dispatched
        assert ("cbs", CellShape.JSON_DOCUMENT) in dispatched


class TestMergeEngine:
    def test_inserts_new_rows(self, repo):
        run = ImportRun(source_name="test")
        stage(repo, run, [StagingRecord(id="a", title="One"), StagingRecord(id="b", title="Two")])

        result = merge(repo, run)

        assert result.rows_processed == 2
        assert result.rows_inserted == 2
        assert result.rows_updated == 0
        assert repo.get_by_external_id("a").title == "One"

    def test_malformed_row_still_counted(self, repo):
        run = ImportRun(source_name="test")
        stage(repo, run, [StagingRecord(id="a", season_number="not-a-number", title="T")])

        result = merge(repo, run)

        assert result.rows_processed == 1
        assert result.field_errors == 1
        item = repo.get_by_external_id("a")
        assert item.season_number is None
        assert item.title == "T"

    def test_full_replace_on_conflict(self, repo):
        first = ImportRun(source_name="first")
        stage(repo, first, [StagingRecord(id="x", title="One", description="Old", countries="US")])
        merge(repo, first)
        before = repo.get_by_external_id("x")

        second = ImportRun(source_name="second")
        stage(repo, second, [StagingRecord(id="x", title="Two")])
        result = merge(repo, second)

        assert result.rows_inserted == 0
        assert result.rows_updated == 1
        assert repo.count() == 1
        item = repo.get_by_external_id("x")
        assert item.title == "Two"
        assert item.description is None
        assert item.countries is None
        assert item.id == before.id

    def test_only_merges_own_run(self, repo):
        other = ImportRun(source_name="other")
        stage(repo, other, [StagingRecord(id="foreign")])
        run = ImportRun(source_name="mine")
        stage(repo, run, [StagingRecord(id="mine")])

        result = merge(repo, run)

        assert result.rows_processed == 1
        assert repo.get_by_external_id("foreign") is None

    def test_rows_without_external_id_are_inserted(self, repo):
        run = ImportRun(source_name="test")
        stage(repo, run, [StagingRecord(title="No id"), StagingRecord(title="Also no id")])

        result = merge(repo, run)

        assert result.rows_processed == 2
        assert repo.count() == 2

    def test_documents_round_trip_through_store(self, repo):
        run = ImportRun(source_name="test")
        stage(repo, run, [StagingRecord(
            id="x",
            premium_features="4K,HDR",
            raw_row={"content": [{"url": "a.jpg", "width": "100"}, None]},
        )])
        merge(repo, run)

        item = repo.get_by_external_id("x")
        assert item.premium_features == ["4K", "HDR"]
        assert item.content == [{"url": "a.jpg", "width": "100"}, None]


@pytest.mark.parametrize("value,expected", [
    ("US,CA", ["US", "CA"]),
    ('["US","CA"]', ["US", "CA"]),
    ("[US] [CA]", ["US", "CA"]),
])
def test_list_forms_merge_identically(repo, value, expected):
    run = ImportRun(source_name="test")
    stage(repo, run, [StagingRecord(id="x", countries=value)])
    merge(repo, run)
    assert repo.get_by_external_id("x").countries == expected
