"""Tests for the import and items HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.feature_flags import FeatureFlags, get_feature_flags
from app.services.media_repository import get_media_repository
from main import app

from conftest import make_csv


@pytest.fixture
def client(repo):
    """Client wired to a temp database."""
    app.dependency_overrides[get_media_repository] = lambda: repo
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload(client, data: bytes, filename="catalog.csv", content_type="text/csv"):
    return client.post("/api/import/csv", files={"csvFile": (filename, data, content_type)})


CATALOG = make_csv(
    ["id", "title", "cbs$SeriesTitle", "cbs$SeasonNumber", "countries"],
    [
        ["a", "Pilot", "Show", "1", "US|CA"],
        ["b", "Second", "Show", "not-a-number", '["GB"]'],
    ],
).getvalue()


class TestCsvImport:
    def test_success(self, client):
        response = upload(client, CATALOG)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["imported"] == 2
        assert data["rows_inserted"] == 2
        assert data["field_errors"] == 1
        assert data["rows_with_errors"] == 1

    def test_non_csv_content_type_is_400(self, client):
        response = upload(client, b"\x89PNG", filename="image.png", content_type="image/png")
        assert response.status_code == 400
        assert response.json()["detail"]["category"] == "invalid_input_format"

    def test_oversized_is_413(self, client, monkeypatch):
        monkeypatch.setenv("MAX_FILE_SIZE", "10")
        response = upload(client, CATALOG)
        assert response.status_code == 413
        assert response.json()["detail"]["category"] == "size_exceeded"

    def test_unreadable_header_is_422(self, client):
        response = upload(client, b'"unterminated\n')
        assert response.status_code == 422
        assert response.json()["detail"]["category"] == "parse_failure"

    def test_missing_file_is_422(self, client):
        response = client.post("/api/import/csv")
        assert response.status_code == 422

    def test_skipped_lines_reported(self, client):
        response = upload(client, b'id,title\na,Good\nb,"bad"x\n')
        assert response.status_code == 200
        assert response.json()["rows_skipped"] == 1
        assert response.json()["imported"] == 1


class TestJsonImport:
    def test_success(self, client):
        response = client.post("/api/import/json", json={"items": [
            {"id": "x", "title": "One", "cbs": {"SeriesTitle": "Nested"}},
        ]})
        assert response.status_code == 200
        assert response.json()["imported"] == 1

        item = client.get("/api/items/x").json()
        assert item["series_title"] == "Nested"

    @pytest.mark.parametrize("body", [{}, {"items": []}, {"items": "x"}, [1, 2]])
    def test_invalid_items_is_400(self, client, body):
        response = client.post("/api/import/json", json=body)
        assert response.status_code == 400

    def test_invalid_json_is_400(self, client):
        response = client.post(
            "/api/import/json",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_disabled_by_flag(self, client):
        app.dependency_overrides[get_feature_flags] = lambda: FeatureFlags(feature_json_import=False)
        response = client.post("/api/import/json", json={"items": [{"id": "x"}]})
        assert response.status_code == 404


class TestImportRuns:
    def test_lists_runs(self, client):
        upload(client, CATALOG)
        upload(client, b"\x89PNG", filename="image.png", content_type="image/png")

        response = client.get("/api/import/runs")
        assert response.status_code == 200
        runs = response.json()
        # Rejected inputs never start a run
        assert len(runs) == 1
        assert runs[0]["status"] == "complete"
        assert runs[0]["rows_processed"] == 2

    def test_run_log_disabled(self, client, repo):
        app.dependency_overrides[get_feature_flags] = lambda: FeatureFlags(feature_import_run_log=False)
        upload(client, CATALOG)
        assert client.get("/api/import/runs").status_code == 404
        assert repo.recent_runs() == []


class TestItems:
    def test_list_and_search(self, client):
        upload(client, CATALOG)

        response = client.get("/api/items")
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = client.get("/api/items", params={"search": "pil"})
        items = response.json()["items"]
        assert [item["external_id"] for item in items] == ["a"]
        assert items[0]["countries"] == ["US", "CA"]
        assert items[0]["season_number"] == 1

    def test_sort_order(self, client):
        upload(client, CATALOG)
        response = client.get("/api/items", params={"sortBy": "title", "sortOrder": "DESC"})
        assert [item["title"] for item in response.json()["items"]] == ["Second", "Pilot"]

    def test_unknown_sort_column_falls_back(self, client):
        upload(client, CATALOG)
        response = client.get("/api/items", params={"sortBy": "title; DROP TABLE media_items"})
        assert response.status_code == 200
        assert response.json()["total"] == 2

    def test_get_missing_item_is_404(self, client):
        assert client.get("/api/items/nope").status_code == 404


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Media Catalog API"
