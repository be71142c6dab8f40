"""
Shared pytest fixtures for parity tests.

Provides:
- Inventory file writers
- A fake fetch capability (no network)
- Sample production HTML pages
- A small rule table
"""

import json
from pathlib import Path

import pytest

PROD_BASE = "https://www.karasuemlak.net"


# =============================================================================
# Fake HTTP
# =============================================================================


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = ""):
        self.status_code = status_code
        self.text = text


class FakeFetcher:
    """
    Stands in for HttpFetcher. pages maps full URL -> FakeResponse or an
    exception instance to raise. Unknown URLs answer 404.
    """

    def __init__(self, pages: dict = None):
        self.pages = dict(pages or {})
        self.calls = []

    def fetch(self, url: str):
        self.calls.append(url)
        result = self.pages.get(url)
        if result is None:
            return FakeResponse(404, "<html><title>Not found</title></html>")
        if isinstance(result, Exception):
            raise result
        return result


def article_html(title: str, body: str = "Article body text.", **extra) -> str:
    tags = "".join(f'<meta property="article:tag" content="{t}">' for t in extra.get("tags", []))
    published = extra.get("published")
    published_meta = f'<meta property="article:published_time" content="{published}">' if published else ""
    return (
        "<html><head>"
        f"<title>{title}</title>"
        f'<meta name="description" content="{extra.get("description", "Summary")}">'
        f"{published_meta}{tags}"
        "</head><body>"
        "<nav>Ana Sayfa | Ilanlar</nav>"
        f"<article><h1>{title}</h1><p>{body}</p></article>"
        "<footer>Copyright</footer>"
        "</body></html>"
    )


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher


@pytest.fixture
def fake_response_cls():
    return FakeResponse


@pytest.fixture
def make_article():
    return article_html


# =============================================================================
# Inventory files
# =============================================================================


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def write_inventory(tmp_path: Path):
    """Write a schema v1 inventory file and return its path."""

    def _write(name: str, urls: list, scanned_at: str = "2026-01-10T08:00:00Z", base_url: str = PROD_BASE):
        return write_json(
            tmp_path / name,
            {"schemaVersion": 1, "scannedAt": scanned_at, "baseUrl": base_url, "urls": urls},
        )

    return _write


@pytest.fixture
def rules_file(tmp_path: Path) -> Path:
    """Rule table used by strategy and fix-runner tests."""
    return write_json(
        tmp_path / "rules.json",
        {
            "redirect_status": 301,
            "obsolete_patterns": ["/eski-"],
            "important_pages": ["/hakkimizda", "/iletisim"],
            "semantic_redirects": {"/eski-kampanya": "/kampanya"},
            "noindex_patterns": [],
        },
    )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    """Keep tests away from the developer's .env and PARITY_* settings."""
    for name in (
        "PARITY_PROD_BASE_URL",
        "PARITY_ARTIFACTS_DIR",
        "PARITY_USER_AGENT",
        "PARITY_FETCH_TIMEOUT",
        "PARITY_FETCH_WORKERS",
        "PARITY_FETCH_DELAY",
        "SOURCE_DATE_EPOCH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
