#!/usr/bin/env python3
"""
Parity Stage 2: Diff Engine

################################################################################
# DIFF IS INVENTORY-ONLY. NO NETWORK ACCESS.
# Reads the two inventory files and writes the diff artifacts. Nothing else.
################################################################################

Compares the production and local URL inventories:

    missing  - production literals with no local literal and no local template
    extra    - local literals with no production counterpart
    changed  - coarse count-based notes for watched content types

Renames are never guessed. A renamed page shows up as one missing entry plus
one extra entry and, for watched types, a change note.

Usage:
    parity diff
    parity diff --prod reports/parity/prod-urls.json --local reports/parity/local-urls.json
    parity diff --out reports/parity --generated-at 2026-01-15T00:00:00Z

Output:
    reports/parity/diff-report.json
    reports/parity/diff-report.md
    reports/parity/history/diff-report-<fingerprint>.json
"""

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from parity import settings
from parity.errors import ParityInputError
from parity.inventory.loader import InventoryLoader
from parity.inventory.normalize import compile_templates, find_matching_template
from parity.report.write_report import (
    render_diff_markdown,
    write_history_copy,
    write_json_artifact,
    write_text_atomic,
)
from parity.utils import parse_timestamp

DIFF_REPORT_VERSION = 1

# Content types whose total local absence is worth a change note
DEFAULT_WATCH_TYPES = ("blog", "news")

EPOCH_ISO = "1970-01-01T00:00:00+00:00"


# =============================================================================
# TIMESTAMPS
# =============================================================================


def resolve_generated_at(explicit: str = None, scanned_at: list = None) -> str:
    """
    Pick the report timestamp without consulting the wall clock.

    Order: explicit value, SOURCE_DATE_EPOCH, latest inventory scannedAt, epoch.
    """
    if explicit:
        dt = parse_timestamp(explicit)
        if dt is None:
            raise ValueError(f"Invalid --generated-at timestamp: {explicit!r}")
        return dt.isoformat()

    epoch = os.getenv("SOURCE_DATE_EPOCH")
    if epoch and epoch.strip().isdigit():
        return datetime.fromtimestamp(int(epoch.strip()), tz=timezone.utc).isoformat()

    parsed = [dt for dt in (parse_timestamp(v) for v in (scanned_at or [])) if dt is not None]
    if parsed:
        return max(parsed).isoformat()
    return EPOCH_ISO


# =============================================================================
# DIFF ENGINE
# =============================================================================


def _missing_sort_key(entry: dict):
    priority = entry.get("priority")
    return (-(priority or 0.0), entry.get("type", ""), entry.get("normalized", ""))


def partition_local(local: list):
    """Split local entries into a literal index and a list of template entries."""
    literal_index = {}
    template_entries = []
    duplicates = 0
    for entry in local:
        if entry.get("pattern"):
            template_entries.append(entry)
            continue
        key = entry["normalized"]
        if key in literal_index:
            duplicates += 1
            continue
        literal_index[key] = entry
    return literal_index, template_entries, duplicates


def index_production(production: list):
    production_index = {}
    duplicates = 0
    for entry in production:
        if entry.get("pattern"):
            # Production is concrete by definition; a stray template is matched as a literal key
            entry = {k: v for k, v in entry.items() if k != "pattern"}
        key = entry["normalized"]
        if key in production_index:
            duplicates += 1
            continue
        production_index[key] = entry
    return production_index, duplicates


def compute_diff(
    production: list,
    local: list,
    generated_at: str = EPOCH_ISO,
    watch_types=DEFAULT_WATCH_TYPES,
) -> dict:
    """
    Diff two lists of UrlEntry dicts. Pure: no I/O, never raises for
    well-formed entries.
    """
    literal_index, template_entries, local_duplicates = partition_local(local)
    templates = compile_templates(template_entries)
    production_index, production_duplicates = index_production(production)

    missing = []
    matched_literal = 0
    matched_template = 0
    template_hits = {}

    for key, entry in production_index.items():
        if key in literal_index:
            matched_literal += 1
            continue
        template = find_matching_template(templates, key)
        if template is not None:
            matched_template += 1
            template_hits[template.template] = template_hits.get(template.template, 0) + 1
            continue
        missing.append(dict(entry))

    extra = [dict(entry) for key, entry in literal_index.items() if key not in production_index]

    # Count-based change notes only; renames are never matched per URL
    production_by_type = {}
    for entry in production_index.values():
        production_by_type[entry["type"]] = production_by_type.get(entry["type"], 0) + 1
    local_by_type = {}
    for entry in literal_index.values():
        local_by_type[entry["type"]] = local_by_type.get(entry["type"], 0) + 1

    changed = []
    for content_type in watch_types:
        production_count = production_by_type.get(content_type, 0)
        local_count = local_by_type.get(content_type, 0)
        if production_count > 0 and local_count == 0:
            changed.append({
                "type": content_type,
                "productionCount": production_count,
                "localCount": local_count,
                "reason": (
                    f"No local {content_type} URLs found, but {production_count} in production"
                ),
            })

    missing.sort(key=_missing_sort_key)
    extra.sort(key=lambda e: e["normalized"])

    by_type = {}
    for entry in missing:
        by_type.setdefault(entry["type"], {"missing": 0, "extra": 0})["missing"] += 1
    for entry in extra:
        by_type.setdefault(entry["type"], {"missing": 0, "extra": 0})["extra"] += 1

    return {
        "reportVersion": DIFF_REPORT_VERSION,
        "generatedAt": generated_at,
        "summary": {
            "productionTotal": len(production_index),
            "localTotal": len(literal_index),
            "missingCount": len(missing),
            "extraCount": len(extra),
            "changedCount": len(changed),
        },
        "matched": {
            "literal": matched_literal,
            "template": matched_template,
        },
        "templates": [
            {
                "pattern": t.template,
                "type": t.content_type,
                "matched": template_hits.get(t.template, 0),
            }
            for t in templates
        ],
        "duplicates": {
            "production": production_duplicates,
            "local": local_duplicates,
        },
        "missing": missing,
        "extra": extra,
        "changed": changed,
        "byType": {k: by_type[k] for k in sorted(by_type)},
    }


# =============================================================================
# RUN
# =============================================================================


def run_diff(
    prod_path: Path,
    local_path: Path,
    out_dir: Path,
    generated_at: str = None,
    type_prefixes: list = None,
    write_history: bool = True,
) -> dict:
    """
    Load both inventories, diff them and write the diff artifacts.

    Both inventories are loaded before anything is written, so an input error
    leaves no partial output.
    """
    prod_loader = InventoryLoader(prod_path, "Production", type_prefixes)
    local_loader = InventoryLoader(local_path, "Local", type_prefixes)
    production = prod_loader.load()
    local = local_loader.load()

    stamp = resolve_generated_at(generated_at, [prod_loader.scanned_at, local_loader.scanned_at])
    report = compute_diff(production, local, generated_at=stamp)
    report["inputs"] = {
        "production": prod_loader.describe(),
        "local": local_loader.describe(),
    }

    out_dir = Path(out_dir)
    json_path = write_json_artifact(out_dir / settings.DIFF_JSON_NAME, report)
    md_path = out_dir / settings.DIFF_MD_NAME
    write_text_atomic(md_path, render_diff_markdown(report))

    history_path = None
    if write_history:
        history_path, _ = write_history_copy(out_dir / settings.HISTORY_DIR_NAME, "diff-report", report)

    return {
        "report": report,
        "json_path": json_path,
        "md_path": md_path,
        "history_path": history_path,
    }


# =============================================================================
# CLI
# =============================================================================


def build_parser(parser: argparse.ArgumentParser = None) -> argparse.ArgumentParser:
    if parser is None:
        parser = argparse.ArgumentParser(
            prog="parity diff",
            description="Diff production and local URL inventories",
        )
    parser.add_argument("--prod", help="Production inventory JSON (default: <out>/prod-urls.json)")
    parser.add_argument("--local", help="Local inventory JSON (default: <out>/local-urls.json)")
    parser.add_argument("--out", help="Artifacts directory (default: $PARITY_ARTIFACTS_DIR or reports/parity)")
    parser.add_argument(
        "--generated-at",
        help="Report timestamp (ISO-8601). Defaults to the latest inventory scannedAt",
    )
    parser.add_argument("--no-history", action="store_true", help="Skip the history/ snapshot copy")
    return parser


def run_from_args(args) -> int:
    settings.load_env()
    conf = settings.get_settings()

    out_dir = Path(args.out) if args.out else conf["artifacts_dir"]
    prod_path = Path(args.prod) if args.prod else out_dir / settings.PROD_INVENTORY_NAME
    local_path = Path(args.local) if args.local else out_dir / settings.LOCAL_INVENTORY_NAME

    print("=" * 70)
    print("PARITY DIFF - Stage 2 (INVENTORY-ONLY)")
    print("=" * 70)
    print()
    print(f"Production inventory: {prod_path}")
    print(f"Local inventory:      {local_path}")
    print(f"Artifacts dir:        {out_dir}")
    print()

    print("Loading inventories...")
    try:
        result = run_diff(
            prod_path,
            local_path,
            out_dir,
            generated_at=args.generated_at,
            write_history=not args.no_history,
        )
    except (ParityInputError, ValueError) as e:
        print(f"  ERROR: {e}")
        return 1

    report = result["report"]
    inputs = report["inputs"]
    templates = report["templates"]
    print(f"  Production: {inputs['production']['entries']} entries")
    print(f"  Local: {inputs['local']['entries']} entries ({len(templates)} templates)")
    print()

    print(f"Diff JSON: {result['json_path']}")
    print(f"Diff summary: {result['md_path']}")
    if result["history_path"]:
        print(f"History copy: {result['history_path']}")
    print()

    summary = report["summary"]
    print("=" * 70)
    print("DIFF SUMMARY")
    print("=" * 70)
    print(f"Generated:        {report['generatedAt']}")
    print(f"Production URLs:  {summary['productionTotal']}")
    print(f"Local URLs:       {summary['localTotal']}")
    print(f"Missing:          {summary['missingCount']}")
    print(f"Extra:            {summary['extraCount']}")
    print(f"Change notes:     {summary['changedCount']}")
    print()

    if summary["missingCount"]:
        print("Missing by type:")
        for content_type, counts in report["byType"].items():
            if counts["missing"]:
                print(f"  {content_type}: {counts['missing']}")
        print()

    for note in report["changed"]:
        print(f"  [NOTE] {note['reason']}")
    if report["changed"]:
        print()

    print("Done.")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return run_from_args(args)


if __name__ == "__main__":
    sys.exit(main())
