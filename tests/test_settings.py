"""
Tests for environment-driven settings and shared helpers.
"""

from pathlib import Path

from parity import settings
from parity.utils import parse_timestamp, slug_from_key


class TestSettings:

    def test_defaults(self):
        conf = settings.get_settings()
        assert conf["prod_base_url"] == "https://www.karasuemlak.net"
        assert conf["artifacts_dir"] == Path("reports/parity")
        assert conf["user_agent"] == "Mozilla/5.0 (compatible; ParityAuditor/1.0)"
        assert conf["fetch_workers"] == 4

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PARITY_PROD_BASE_URL", "https://staging.example.com/")
        monkeypatch.setenv("PARITY_FETCH_TIMEOUT", "3.5")
        monkeypatch.setenv("PARITY_FETCH_WORKERS", "0")
        conf = settings.get_settings()
        assert conf["prod_base_url"] == "https://staging.example.com"
        assert conf["fetch_timeout"] == 3.5
        assert conf["fetch_workers"] == 1

    def test_bad_number_falls_back(self, monkeypatch, capsys):
        monkeypatch.setenv("PARITY_FETCH_DELAY", "slow")
        assert settings.get_settings()["fetch_delay"] == settings.DEFAULT_FETCH_DELAY
        assert "WARNING: PARITY_FETCH_DELAY" in capsys.readouterr().out

    def test_load_env_from_cwd(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PARITY_FETCH_WORKERS=9\n", encoding="utf-8")
        assert settings.load_env().resolve() == env_file.resolve()
        assert settings.get_settings()["fetch_workers"] == 9

    def test_load_env_none(self):
        assert settings.load_env() is None


class TestUtils:

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-01-01T00:00:00Z").isoformat() == "2026-01-01T00:00:00+00:00"
        assert parse_timestamp("2026-01-01T03:00:00+03:00").isoformat() == "2026-01-01T00:00:00+00:00"
        assert parse_timestamp("2026-01-01").isoformat() == "2026-01-01T00:00:00+00:00"
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(12345) is None

    def test_slug_from_key(self):
        assert slug_from_key("/blog/ramazan-2026") == "ramazan-2026"
        assert slug_from_key("/") == ""
