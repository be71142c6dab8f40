"""
Tests for the diff engine and the diff stage runner.
"""

import json

import pytest

from parity.diff.diff_urls import (
    EPOCH_ISO,
    compute_diff,
    resolve_generated_at,
    run_diff,
)
from parity.inventory.loader import build_entry


def entries(*records):
    return [build_entry(r) if isinstance(r, dict) else build_entry({"url": r}) for r in records]


class TestComputeDiff:

    def test_missing_and_extra(self):
        production = entries("/a", "/b", "/blog/x")
        local = entries("/a", "/new-page")
        report = compute_diff(production, local)

        assert [m["normalized"] for m in report["missing"]] == ["/blog/x", "/b"]
        assert [e["normalized"] for e in report["extra"]] == ["/new-page"]
        assert report["summary"]["missingCount"] == 2
        assert report["summary"]["extraCount"] == 1
        assert report["matched"] == {"literal": 1, "template": 0}

    def test_template_covers_production_keys(self):
        production = entries("/blog/a", "/blog/b", "/blog/b/comments")
        local = entries({"pattern": "/blog/:slug", "type": "blog"})
        report = compute_diff(production, local)

        assert [m["normalized"] for m in report["missing"]] == ["/blog/b/comments"]
        assert report["matched"]["template"] == 2
        assert report["templates"] == [{"pattern": "/blog/:slug", "type": "blog", "matched": 2}]
        # Templates are never reported as extra
        assert report["extra"] == []
        assert report["summary"]["localTotal"] == 0

    def test_completeness(self):
        production = entries("/a", "/blog/a", "/haberler/b", "/ilan/1", "/x/y")
        local = entries("/a", {"pattern": "/blog/[slug]", "type": "blog"}, "/ilan/2")
        report = compute_diff(production, local)

        missing = {m["normalized"] for m in report["missing"]}
        literal = {"/a", "/ilan/2"}
        for entry in production:
            key = entry["normalized"]
            covered = key in literal or key == "/blog/a"
            assert covered != (key in missing)

    def test_symmetry(self):
        production = entries("/a", "/b")
        local = entries("/b", "/c", "/d")
        report = compute_diff(production, local)
        prod_keys = {e["normalized"] for e in production}
        for entry in report["extra"]:
            assert entry["normalized"] not in prod_keys
        assert {e["normalized"] for e in report["extra"]} == {"/c", "/d"}

    def test_swapping_sides_swaps_missing_and_extra(self):
        production = entries("/a", "/b", "/blog/x", "/ilan/1")
        local = entries("/a", "/ilan/1", "/yeni", "/kampanya")
        forward = compute_diff(production, local)
        backward = compute_diff(local, production)

        assert {e["normalized"] for e in backward["extra"]} == {m["normalized"] for m in forward["missing"]}
        assert {m["normalized"] for m in backward["missing"]} == {e["normalized"] for e in forward["extra"]}
        assert forward["matched"]["literal"] == backward["matched"]["literal"] == 2

    def test_every_production_key_accounted_for_once(self):
        production = entries("/a", "/A/", "/blog/a", "/blog/a/", "/haberler/b", "/ilan/1", "/x/y", "/x/y")
        local = entries("/a", {"pattern": "/blog/[slug]", "type": "blog"}, "/ilan/1", "/ilan/1/")
        report = compute_diff(production, local)

        summary = report["summary"]
        matched = report["matched"]
        assert summary["productionTotal"] == 5
        assert summary["missingCount"] + matched["literal"] + matched["template"] == summary["productionTotal"]
        assert matched == {"literal": 2, "template": 1}

    def test_equivalent_urls_are_not_reported(self):
        production = entries("https://www.karasuemlak.net/Hakkimizda/")
        local = entries("http://localhost:3000/hakkimizda")
        report = compute_diff(production, local)
        assert report["missing"] == []
        assert report["extra"] == []

    def test_duplicates_counted_once(self):
        production = entries("/a", "/A/", "https://x.com/a")
        local = entries("/b", "/b/")
        report = compute_diff(production, local)
        assert report["summary"]["productionTotal"] == 1
        assert report["summary"]["localTotal"] == 1
        assert report["duplicates"] == {"production": 2, "local": 1}
        assert len(report["missing"]) == 1

    def test_missing_sorted_by_priority_then_type(self):
        production = entries(
            {"url": "/z", "priority": 0.2},
            {"url": "/blog/low", "priority": 0.2},
            {"url": "/haberler/top", "priority": 0.9},
            {"url": "/no-priority"},
        )
        report = compute_diff(production, [])
        assert [m["normalized"] for m in report["missing"]] == [
            "/haberler/top",
            "/blog/low",
            "/z",
            "/no-priority",
        ]

    def test_non_finite_priority_sorts_as_absent(self):
        production = entries(
            {"url": "/a", "priority": 0.1},
            {"url": "/b", "priority": "nan"},
            {"url": "/c", "priority": 0.9},
        )
        report = compute_diff(production, [])
        assert [m["normalized"] for m in report["missing"]] == ["/c", "/a", "/b"]
        assert "priority" not in report["missing"][2]

    def test_summary_and_by_type_agree(self):
        production = entries("/blog/a", "/blog/b", "/haberler/c", "/x")
        local = entries("/y", "/blog/z")
        report = compute_diff(production, local)

        summary = report["summary"]
        assert summary["missingCount"] == len(report["missing"])
        assert summary["extraCount"] == len(report["extra"])
        assert summary["changedCount"] == len(report["changed"])
        assert sum(c["missing"] for c in report["byType"].values()) == summary["missingCount"]
        assert sum(c["extra"] for c in report["byType"].values()) == summary["extraCount"]
        assert list(report["byType"]) == sorted(report["byType"])

    def test_news_change_note(self):
        production = entries(*[f"/haberler/haber-{i}" for i in range(1, 13)])
        local = entries("/", "/hakkimizda")
        report = compute_diff(production, local)

        assert report["summary"]["missingCount"] == 12
        assert all(m["type"] == "news" for m in report["missing"])
        assert report["changed"] == [
            {
                "type": "news",
                "productionCount": 12,
                "localCount": 0,
                "reason": "No local news URLs found, but 12 in production",
            }
        ]

    def test_no_change_note_when_local_has_some(self):
        production = entries("/blog/a", "/blog/b")
        local = entries("/blog/c")
        report = compute_diff(production, local)
        assert report["changed"] == []

    def test_empty_inventories(self):
        report = compute_diff([], [])
        assert report["summary"] == {
            "productionTotal": 0,
            "localTotal": 0,
            "missingCount": 0,
            "extraCount": 0,
            "changedCount": 0,
        }
        assert report["generatedAt"] == EPOCH_ISO


class TestResolveGeneratedAt:

    def test_explicit(self):
        assert resolve_generated_at("2026-01-15T00:00:00Z") == "2026-01-15T00:00:00+00:00"

    def test_explicit_invalid(self):
        with pytest.raises(ValueError):
            resolve_generated_at("yesterday")

    def test_source_date_epoch(self, monkeypatch):
        monkeypatch.setenv("SOURCE_DATE_EPOCH", "86400")
        assert resolve_generated_at(None, ["2026-01-01T00:00:00Z"]) == "1970-01-02T00:00:00+00:00"

    def test_latest_scanned_at(self):
        stamp = resolve_generated_at(None, ["2026-01-01T00:00:00Z", None, "2026-01-03T12:00:00+03:00"])
        assert stamp == "2026-01-03T09:00:00+00:00"

    def test_falls_back_to_epoch(self):
        assert resolve_generated_at(None, [None, "garbage"]) == EPOCH_ISO


class TestRunDiff:

    @pytest.fixture
    def inventories(self, write_inventory):
        prod = write_inventory(
            "prod-urls.json",
            [
                {"url": "https://www.karasuemlak.net/", "priority": 1.0},
                {"url": "https://www.karasuemlak.net/hakkimizda", "priority": 0.8},
                {"url": "https://www.karasuemlak.net/blog/ramazan-2026", "priority": 0.6},
                {"url": "https://www.karasuemlak.net/haberler/yeni-yol", "priority": 0.7},
            ],
        )
        local = write_inventory(
            "local-urls.json",
            [
                {"url": "http://localhost:3000/"},
                {"pattern": "/blog/[slug]", "type": "blog"},
                {"url": "http://localhost:3000/satilik"},
            ],
            scanned_at="2026-01-11T09:30:00Z",
        )
        return prod, local

    def test_writes_artifacts(self, tmp_path, inventories):
        prod, local = inventories
        out = tmp_path / "out"
        result = run_diff(prod, local, out)

        data = json.loads((out / "diff-report.json").read_text(encoding="utf-8"))
        assert data == result["report"]
        assert [m["normalized"] for m in data["missing"]] == ["/hakkimizda", "/haberler/yeni-yol"]
        assert [e["normalized"] for e in data["extra"]] == ["/satilik"]
        assert data["generatedAt"] == "2026-01-11T09:30:00+00:00"
        assert data["inputs"]["production"]["file"] == "prod-urls.json"
        assert (out / "diff-report.md").exists()
        assert result["history_path"].parent == out / "history"
        assert result["history_path"].exists()

    def test_non_finite_priority_keeps_report_strict_json(self, tmp_path, write_inventory):
        # json.dumps writes bare NaN/Infinity tokens for these
        prod = write_inventory(
            "nan-prod.json",
            [
                {"url": "https://www.karasuemlak.net/a", "priority": float("nan")},
                {"url": "https://www.karasuemlak.net/b", "priority": float("inf")},
            ],
        )
        local = write_inventory("nan-local.json", [{"url": "http://localhost:3000/"}])
        out = tmp_path / "out"
        run_diff(prod, local, out)

        def reject(token):
            raise AssertionError(f"non-standard JSON token: {token}")

        data = json.loads((out / "diff-report.json").read_text(encoding="utf-8"), parse_constant=reject)
        assert [m["normalized"] for m in data["missing"]] == ["/a", "/b"]

    def test_byte_identical_reruns(self, tmp_path, inventories):
        prod, local = inventories
        run_diff(prod, local, tmp_path / "one")
        run_diff(prod, local, tmp_path / "two")
        for name in ("diff-report.json", "diff-report.md"):
            assert (tmp_path / "one" / name).read_bytes() == (tmp_path / "two" / name).read_bytes()

    def test_input_error_writes_nothing(self, tmp_path, inventories):
        prod, _ = inventories
        out = tmp_path / "out"
        with pytest.raises(Exception):
            run_diff(prod, tmp_path / "missing.json", out)
        assert not out.exists()

    def test_no_history(self, tmp_path, inventories):
        prod, local = inventories
        result = run_diff(prod, local, tmp_path / "out", write_history=False)
        assert result["history_path"] is None
        assert not (tmp_path / "out" / "history").exists()
