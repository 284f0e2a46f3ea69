"""Tests for the import orchestrator: end-to-end runs, atomicity, failures."""

import io
import sqlite3
from unittest.mock import patch

import pytest

from app.ingestion import CancelToken, ImportOrchestrator, IngestionError
from app.ingestion import merge as merge_module
from app.ingestion.adapters import CsvRowSource, JsonRowSource
from app.models.enums import ErrorCategory, ImportState

from conftest import make_csv


HEADER = [
    "id", "title", "series_title", "cbs$SeriesTitle", "cbs$SeasonNumber",
    "countries", "content[0].url", "content[0].width", "content[1].url",
]


def csv_source(rows, header=HEADER, **kwargs):
    return CsvRowSource(make_csv(header, rows), filename="catalog.csv", content_type="text/csv", **kwargs)


def episode(n: int) -> list[str]:
    return [f"ep-{n}", f"Episode {n}", "Plain", "Vendor", "1", "[US] [CA]", "a.jpg", "100", "b.jpg"]


@pytest.fixture
def orchestrator(repo):
    return ImportOrchestrator(repository=repo, batch_size=100)


class TestSuccessfulRun:
    def test_import_reports_rows_processed(self, orchestrator, repo):
        summary = orchestrator.import_batch(csv_source([episode(1), episode(2)]))

        assert summary.rows_processed == 2
        assert summary.rows_inserted == 2
        assert summary.rows_skipped == 0
        assert repo.count() == 2

    def test_row_reshaped_and_typed(self, orchestrator, repo):
        orchestrator.import_batch(csv_source([episode(1)]))

        item = repo.get_by_external_id("ep-1")
        assert item.series_title == "Vendor"
        assert item.season_number == 1
        assert item.countries == ["US", "CA"]
        assert item.content == [{"url": "a.jpg", "width": "100"}, {"url": "b.jpg"}]
        assert item.cbs == {"SeriesTitle": "Vendor", "SeasonNumber": "1"}

    def test_idempotent(self, orchestrator, repo):
        rows = [episode(n) for n in range(250)]
        orchestrator.import_batch(csv_source(rows))
        first = {item.external_id: item for item in repo.list_items()}

        summary = orchestrator.import_batch(csv_source(rows))
        second = {item.external_id: item for item in repo.list_items()}

        assert summary.rows_updated == 250
        assert summary.rows_inserted == 0
        assert repo.count() == 250
        assert first == second

    def test_upsert_overwrite(self, orchestrator, repo):
        orchestrator.import_batch(JsonRowSource([{"id": "x", "title": "One"}]))
        orchestrator.import_batch(JsonRowSource([{"id": "x", "title": "Two"}]))

        assert repo.count() == 1
        assert repo.get_by_external_id("x").title == "Two"

    def test_namespace_precedence(self, orchestrator, repo):
        orchestrator.import_batch(JsonRowSource([
            {"id": "x", "series_title": "A", "cbs$SeriesTitle": "B"},
        ]))
        assert repo.get_by_external_id("x").series_title == "B"

    def test_malformed_field_tolerated(self, orchestrator, repo):
        summary = orchestrator.import_batch(JsonRowSource([
            {"id": "x", "season_number": "not-a-number", "title": "Still here"},
        ]))

        assert summary.rows_processed == 1
        assert summary.field_errors == 1
        item = repo.get_by_external_id("x")
        assert item.season_number is None
        assert item.title == "Still here"

    def test_extreme_cell_values_stay_per_cell(self, orchestrator, repo):
        summary = orchestrator.import_batch(JsonRowSource([
            {"id": "x", "season_number": "1" * 30, "updated": "9" * 5000},
            {"id": "y", "availableDate": "9999-12-31T23:59:59-01:00", "ratings": "[" * 100_000},
            {"id": "z", "title": "ok"},
        ]))

        assert summary.rows_processed == 3
        assert summary.field_errors == 4
        assert summary.rows_with_errors == 2
        x = repo.get_by_external_id("x")
        assert x.season_number is None
        assert x.updated_timestamp is None
        y = repo.get_by_external_id("y")
        assert y.available_date is None
        assert y.ratings is None
        assert repo.get_by_external_id("z").title == "ok"

    def test_json_pre_nested_structure(self, orchestrator, repo):
        orchestrator.import_batch(JsonRowSource([{
            "id": "x",
            "content": [{"url": "a.jpg"}],
            "cbs": {"SeriesTitle": "Nested", "SeasonNumber": 4},
            "ytcp$youTubeVideoIds": {"9287": "abc"},
        }]))

        item = repo.get_by_external_id("x")
        assert item.series_title == "Nested"
        assert item.season_number == 4
        assert item.content == [{"url": "a.jpg"}]
        assert item.youtube_video_ids == ["abc"]

    def test_staging_left_populated_for_run(self, orchestrator, repo):
        summary = orchestrator.import_batch(csv_source([episode(n) for n in range(5)]))
        assert repo.count_staging(summary.run_id) == 5
        assert repo.count_staging() == 5

    def test_next_run_clears_previous_staging(self, orchestrator, repo):
        first = orchestrator.import_batch(csv_source([episode(1), episode(2)]))
        second = orchestrator.import_batch(csv_source([episode(3)]))
        assert repo.count_staging(first.run_id) == 0
        assert repo.count_staging(second.run_id) == 1

    def test_batches_counted(self, orchestrator):
        summary = orchestrator.import_batch(csv_source([episode(n) for n in range(250)]))
        assert summary.batches == 3
        assert summary.rows_staged == 250

    def test_run_logged_complete(self, orchestrator, repo):
        summary = orchestrator.import_batch(csv_source([episode(1)]))
        runs = repo.recent_runs()
        assert runs[0]["run_id"] == summary.run_id
        assert runs[0]["status"] == "complete"
        assert runs[0]["rows_processed"] == 1
        assert runs[0]["source_name"] == "csv:catalog.csv"


class TestMalformedCsv:
    def test_bad_lines_skipped_and_counted(self, orchestrator, repo):
        data = (
            "id,title\n"
            "a,Good\n"
            'b,"bad"quote\n'
            "c,Too,many,fields\n"
            "d,Also good\n"
        ).encode()
        source = CsvRowSource(io.BytesIO(data), filename="x.csv")

        summary = orchestrator.import_batch(source)

        assert summary.rows_processed == 2
        assert summary.rows_skipped == 2
        assert repo.get_by_external_id("a").title == "Good"
        assert repo.get_by_external_id("d").title == "Also good"
        assert repo.get_by_external_id("b") is None

    def test_short_rows_fill_missing_fields_with_null(self, orchestrator, repo):
        source = CsvRowSource(io.BytesIO(b"id,title,description\nx,Only title\n"), filename="x.csv")
        orchestrator.import_batch(source)
        item = repo.get_by_external_id("x")
        assert item.title == "Only title"
        assert item.description is None

    def test_bom_and_padded_header(self, orchestrator, repo):
        source = CsvRowSource(io.BytesIO("\ufeff id , title \nx,T\n".encode("utf-8")), filename="x.csv")
        orchestrator.import_batch(source)
        assert repo.get_by_external_id("x").title == "T"


class TestInputContract:
    def test_non_csv_content_type_rejected(self, orchestrator, repo):
        source = CsvRowSource(io.BytesIO(b"id\nx\n"), filename="x.csv", content_type="image/png")
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(source)
        assert exc_info.value.category is ErrorCategory.INVALID_INPUT_FORMAT
        assert repo.recent_runs() == []

    def test_non_csv_extension_rejected(self, orchestrator):
        source = CsvRowSource(io.BytesIO(b"id\nx\n"), filename="x.xlsx", content_type="text/csv")
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(source)
        assert exc_info.value.category is ErrorCategory.INVALID_INPUT_FORMAT

    def test_oversized_rejected_before_processing(self, orchestrator, repo):
        source = csv_source([episode(1)], size_bytes=2_000, max_size_bytes=1_000)
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(source)
        assert exc_info.value.category is ErrorCategory.SIZE_EXCEEDED
        assert repo.count() == 0
        assert repo.recent_runs() == []

    @pytest.mark.parametrize("items", [None, [], "nope", [1, 2]])
    def test_invalid_json_items_rejected(self, orchestrator, items):
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(JsonRowSource(items))
        assert exc_info.value.category is ErrorCategory.INVALID_INPUT_FORMAT

    def test_too_many_json_items(self, orchestrator):
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(JsonRowSource([{"id": "a"}, {"id": "b"}], max_items=1))
        assert exc_info.value.category is ErrorCategory.SIZE_EXCEEDED

    def test_unreadable_header(self, orchestrator):
        source = CsvRowSource(io.BytesIO(b'"unterminated\n'), filename="x.csv")
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(source)
        assert exc_info.value.category is ErrorCategory.PARSE_FAILURE


class TestAtomicity:
    def _seed(self, orchestrator):
        return orchestrator.import_batch(JsonRowSource([{"id": "seed", "title": "Seed"}]))

    def test_merge_failure_rolls_back_everything(self, orchestrator, repo):
        seed = self._seed(orchestrator)
        real_convert = merge_module.convert_row
        calls = {"n": 0}

        def failing_convert(row):
            calls["n"] += 1
            if calls["n"] == 901:
                raise RuntimeError("simulated merge failure")
            return real_convert(row)

        rows = [episode(n) for n in range(1000)]
        with patch("app.ingestion.merge.convert_row", side_effect=failing_convert):
            with pytest.raises(IngestionError) as exc_info:
                orchestrator.import_batch(csv_source(rows))

        assert exc_info.value.category is ErrorCategory.STORE_FAILURE
        assert repo.count() == 1
        assert repo.get_by_external_id("ep-0") is None
        # Staging is back to what the seed run left behind
        assert repo.count_staging() == 1
        assert repo.count_staging(seed.run_id) == 1

    def test_batch_insert_failure_rolls_back(self, orchestrator, repo):
        self._seed(orchestrator)
        real_insert = repo.insert_staging_batch
        calls = {"n": 0}

        def failing_insert(cursor, run_id, records):
            calls["n"] += 1
            if calls["n"] == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return real_insert(cursor, run_id, records)

        with patch.object(repo, "insert_staging_batch", side_effect=failing_insert):
            with pytest.raises(IngestionError) as exc_info:
                orchestrator.import_batch(csv_source([episode(n) for n in range(300)]))

        assert exc_info.value.category is ErrorCategory.STORE_FAILURE
        assert repo.count() == 1
        assert repo.count_staging() == 1

    def test_failed_run_logged(self, orchestrator, repo):
        with patch.object(repo, "upsert_items", side_effect=sqlite3.IntegrityError("boom")):
            with pytest.raises(IngestionError):
                orchestrator.import_batch(csv_source([episode(1)]))

        run = repo.recent_runs()[0]
        assert run["status"] == "failed"
        assert run["error_category"] == "store_failure"
        assert "boom" in run["error_message"]

    def test_source_read_error_is_parse_failure(self, orchestrator, repo):
        class ExplodingSource(JsonRowSource):
            def iter_rows(self):
                yield {"id": "a"}
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(ExplodingSource([{"id": "a"}]))

        assert exc_info.value.category is ErrorCategory.PARSE_FAILURE
        assert repo.count() == 0


class TestCancellation:
    def test_cancelled_before_start(self, orchestrator, repo):
        token = CancelToken()
        token.cancel()
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(csv_source([episode(1)]), cancel_token=token)
        assert exc_info.value.category is ErrorCategory.CANCELLED
        assert repo.count() == 0

    def test_cancelled_mid_stream_rolls_back(self, orchestrator, repo):
        token = CancelToken()

        class CancellingSource(JsonRowSource):
            def iter_rows(self):
                for i, row in enumerate(super().iter_rows()):
                    if i == 150:
                        token.cancel()
                    yield row

        source = CancellingSource([{"id": f"r{i}"} for i in range(500)])
        with pytest.raises(IngestionError) as exc_info:
            orchestrator.import_batch(source, cancel_token=token)

        assert exc_info.value.category is ErrorCategory.CANCELLED
        assert repo.count() == 0
        assert repo.count_staging() == 0
        assert repo.recent_runs()[0]["error_category"] == "cancelled"


class TestPreview:
    def test_preview_does_not_write(self, orchestrator, repo):
        rows = orchestrator.preview(csv_source([episode(1), episode(2)]), limit=1)
        assert len(rows) == 1
        assert rows[0]["series_title"] == "Vendor"
        assert rows[0]["countries"] == ["US", "CA"]
        assert repo.count() == 0


def test_run_state_machine_rejects_skipped_states():
    from app.ingestion.protocols import ImportRun

    run = ImportRun(source_name="test")
    with pytest.raises(RuntimeError):
        run.transition(ImportState.MERGING)
    run.transition(ImportState.FAILED)
    assert run.state is ImportState.FAILED
