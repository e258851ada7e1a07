"""Tests for the curator service endpoints and the CLI."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from ketogo import cli
from ketogo.core.errors import StoreWriteError
from ketogo.core.repositories import InMemoryStore
from ketogo.core.settings import Settings
from ketogo.ingestor.app import app

STATS = {
    'status': 'published',
    'feeds_ok': 2,
    'feeds_error': 0,
    'items_fetched': 5,
    'buckets': {
        'observations': {'candidates': 5, 'approved': 2, 'duplicates': 0, 'quota_skipped': 0,
                         'rejected': {'hard_reject': 3}, 'added': 2},
        'objects': {'candidates': 5, 'approved': 0, 'duplicates': 0, 'quota_skipped': 0,
                    'rejected': {}, 'added': 0},
    },
    'written': ['observations'],
    'errors': [],
    'runtime_seconds': 0.1,
}


@pytest.fixture
def client():
    return TestClient(app)


class TestCuratorService:
    """HTTP surface of the curator."""

    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "service": "curator"}

    def test_root(self, client):
        with patch("ketogo.ingestor.app.get_settings", return_value=Settings(allow_manual_run=False)):
            response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["run"] == "/run (disabled)"

    def test_observations_listing(self, client):
        store = InMemoryStore("observations", [
            {"fingerprint": f"f{i}", "source": "Reddit", "title": f"Odd {i}", "link": f"https://x/{i}",
             "published_at": "2024-03-06T10:00:00Z"}
            for i in range(3)
        ])
        with patch("ketogo.ingestor.app.build_store", return_value=store):
            response = client.get("/observations", params={"limit": 2})

        assert response.status_code == 200
        assert [r["fingerprint"] for r in response.json()] == ["f0", "f1"]

    def test_objects_limit_validation(self, client):
        response = client.get("/objects", params={"limit": 0})
        assert response.status_code == 422

    def test_manual_run_disabled(self, client):
        with patch("ketogo.ingestor.app.get_settings", return_value=Settings(allow_manual_run=False)):
            response = client.post("/run")
        assert response.status_code == 403

    def test_manual_run(self, client):
        with patch("ketogo.ingestor.app.get_settings", return_value=Settings(allow_manual_run=True)), \
                patch("ketogo.ingestor.app.run_daily", new=AsyncMock(return_value=STATS)) as run:
            response = client.post("/run", params={"dry_run": True})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "published"
        assert body["message"] == "Added 2 entries"
        run.assert_awaited_once_with(dry_run=True)

    def test_manual_run_write_failure(self, client):
        with patch("ketogo.ingestor.app.get_settings", return_value=Settings(allow_manual_run=True)), \
                patch("ketogo.ingestor.app.run_daily", new=AsyncMock(side_effect=StoreWriteError("disk full"))):
            response = client.post("/run")

        assert response.status_code == 500


class TestCLI:
    """Exit codes of the scheduled entry point."""

    def test_daily_success(self, capsys):
        with patch("ketogo.cli.run_daily", new=AsyncMock(return_value=STATS)) as run:
            assert cli.main(["daily", "--dry-run"]) == 0

        run.assert_awaited_once_with(dry_run=True)
        assert "Status: published" in capsys.readouterr().out

    def test_quiet_day_exits_zero(self):
        quiet = dict(STATS, status='quiet_day')
        with patch("ketogo.cli.run_daily", new=AsyncMock(return_value=quiet)):
            assert cli.main(["daily"]) == 0

    def test_store_failure_exits_nonzero(self):
        with patch("ketogo.cli.run_daily", new=AsyncMock(side_effect=StoreWriteError("disk full"))):
            assert cli.main(["daily"]) == 1

    def test_weekly_skipped_exits_zero(self, capsys):
        stats = {'status': 'skipped', 'week': '2024-W10', 'queries': [], 'items_fetched': 0,
                 'duplicates': 0, 'filtered': 0, 'added': 0, 'errors': [], 'runtime_seconds': 0}
        with patch("ketogo.cli.run_weekly_objects", new=AsyncMock(return_value=stats)):
            assert cli.main(["objects-weekly"]) == 0
        assert "Week: 2024-W10" in capsys.readouterr().out

    def test_init_db(self, capsys):
        with patch("ketogo.cli.init_db", new=AsyncMock()) as init:
            assert cli.main(["init-db", "--drop", "--db-url", "sqlite+aiosqlite:///ketogo.db"]) == 0

        init.assert_awaited_once_with("sqlite+aiosqlite:///ketogo.db", drop=True)
        assert "approved_entries" in capsys.readouterr().out

    def test_init_db_creates_schema(self, tmp_path):
        db_path = tmp_path / "ketogo.db"
        assert cli.main(["init-db", "--db-url", f"sqlite+aiosqlite:///{db_path}"]) == 0
        assert db_path.exists()

    def test_init_db_failure_exits_nonzero(self):
        with patch("ketogo.cli.init_db", new=AsyncMock(side_effect=RuntimeError("connection refused"))):
            assert cli.main(["init-db"]) == 1

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            cli.main([])
