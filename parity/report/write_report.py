#!/usr/bin/env python3
"""
Report / Artifact Writer

Machine-readable artifacts are serialized canonically (sorted keys, 2-space
indent, UTF-8, trailing newline) so identical inputs reproduce identical
bytes and runs can be diffed in version control. List order is whatever the
engines produced.

Markdown summaries are for humans: counts table, per-type missing sections
and capped previews for large categories.
"""

import hashlib
import json
import os
import tempfile
from pathlib import Path

PREVIEW_LIMIT = 50


# =============================================================================
# JSON ARTIFACTS
# =============================================================================


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def content_fingerprint(data) -> str:
    """sha256 of the canonical serialization."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def write_text_atomic(path: Path, text: str):
    """Write via temp file + rename so readers never see a half-written artifact."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_json_artifact(path: Path, data) -> Path:
    write_text_atomic(path, canonical_json(data))
    return Path(path)


def write_history_copy(history_dir: Path, stem: str, data):
    """
    Write an immutable, content-addressed copy of an artifact.

    Returns the path, and whether it was newly written (an existing copy is
    never overwritten).
    """
    fingerprint = content_fingerprint(data)
    path = Path(history_dir) / f"{stem}-{fingerprint[:12]}.json"
    if path.exists():
        return path, False
    write_json_artifact(path, data)
    return path, True


def load_json_required(path: Path):
    """Load a JSON artifact. Raises FileNotFoundError / ValueError."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# MARKDOWN
# =============================================================================


def _md_cell(value) -> str:
    if value is None or value == "":
        return "-"
    return str(value).replace("|", "\\|").replace("\n", " ")


def _format_priority(value) -> str:
    if value is None:
        return "-"
    return f"{float(value):.1f}"


def _group_by_type(entries: list) -> dict:
    groups = {}
    for entry in entries:
        groups.setdefault(entry.get("type", "unknown"), []).append(entry)
    return groups


def render_diff_markdown(report: dict, preview_limit: int = PREVIEW_LIMIT) -> str:
    """Human-readable diff summary."""
    summary = report.get("summary", {})
    lines = []
    lines.append("# URL Parity Diff Report")
    lines.append("")
    lines.append(f"**Generated:** {report.get('generatedAt', 'unknown')}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Count |")
    lines.append("|--------|-------|")
    lines.append(f"| Production URLs | {summary.get('productionTotal', 0)} |")
    lines.append(f"| Local URLs | {summary.get('localTotal', 0)} |")
    lines.append(f"| Missing URLs | **{summary.get('missingCount', 0)}** |")
    lines.append(f"| Extra URLs | {summary.get('extraCount', 0)} |")
    lines.append(f"| Change notes | {summary.get('changedCount', 0)} |")
    matched = report.get("matched", {})
    if matched:
        lines.append(f"| Matched (literal) | {matched.get('literal', 0)} |")
        lines.append(f"| Matched (template) | {matched.get('template', 0)} |")
    lines.append("")

    by_type = report.get("byType", {})
    if by_type:
        lines.append("### By Type")
        lines.append("")
        lines.append("| Type | Missing | Extra |")
        lines.append("|------|---------|-------|")
        for content_type in sorted(by_type):
            counts = by_type[content_type]
            lines.append(f"| {content_type} | {counts.get('missing', 0)} | {counts.get('extra', 0)} |")
        lines.append("")

    missing = report.get("missing", [])
    if missing:
        lines.append(f"## Missing URLs ({len(missing)})")
        lines.append("")
        lines.append("These URLs exist in production but are missing in the local version.")
        lines.append("")
        for content_type, entries in _group_by_type(missing).items():
            lines.append(f"### {content_type.upper()} ({len(entries)})")
            lines.append("")
            lines.append("| URL | Priority | Last Modified |")
            lines.append("|-----|----------|---------------|")
            for entry in entries[:preview_limit]:
                lines.append(
                    f"| `{_md_cell(entry.get('normalized'))}` | {_format_priority(entry.get('priority'))} "
                    f"| {_md_cell(entry.get('lastmod'))} |"
                )
            if len(entries) > preview_limit:
                lines.append("")
                lines.append(f"*... and {len(entries) - preview_limit} more*")
            lines.append("")

    extra = report.get("extra", [])
    if extra:
        lines.append(f"## Extra URLs ({len(extra)})")
        lines.append("")
        lines.append("These URLs exist locally but not in production (new pages).")
        lines.append("")
        lines.append("| URL | Type | Source |")
        lines.append("|-----|------|--------|")
        for entry in extra[:preview_limit]:
            lines.append(
                f"| `{_md_cell(entry.get('normalized'))}` | {_md_cell(entry.get('type'))} "
                f"| {_md_cell(entry.get('source'))} |"
            )
        if len(extra) > preview_limit:
            lines.append("")
            lines.append(f"*... and {len(extra) - preview_limit} more*")
        lines.append("")

    changed = report.get("changed", [])
    if changed:
        lines.append("## Change Notes")
        lines.append("")
        lines.append("| Type | Production | Local | Note |")
        lines.append("|------|------------|-------|------|")
        for note in changed:
            lines.append(
                f"| {_md_cell(note.get('type'))} | {note.get('productionCount', 0)} "
                f"| {note.get('localCount', 0)} | {_md_cell(note.get('reason'))} |"
            )
        lines.append("")

    lines.append("---")
    lines.append("")
    lines.append("*Next step: run `parity fix` to decide remediation for missing URLs*")
    lines.append("")
    return "\n".join(lines)


def render_fix_markdown(report: dict, preview_limit: int = PREVIEW_LIMIT) -> str:
    """Human-readable fix summary."""
    lines = []
    lines.append("# URL Parity Fix Report")
    lines.append("")
    lines.append(f"**Generated:** {report.get('generatedAt', 'unknown')}")
    diff_ref = report.get("diffReport", {})
    if diff_ref:
        lines.append(f"**Diff report:** {diff_ref.get('fingerprint', 'unknown')[:12]}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Outcome | Count |")
    lines.append("|---------|-------|")
    lines.append(f"| Total processed | {report.get('total', 0)} |")
    lines.append(f"| Recreate | {report.get('recreated', 0)} |")
    lines.append(f"| Redirect | {report.get('redirected', 0)} |")
    lines.append(f"| Noindex | {report.get('noindexed', 0)} |")
    lines.append(f"| Skip (manual review) | **{report.get('skipped', 0)}** |")
    lines.append(f"| Content staged for import | {report.get('contentImported', 0)} |")
    lines.append(f"| Extraction failed | {report.get('extractionFailed', 0)} |")
    lines.append(f"| Redirect rules | {len(report.get('redirects', []))} |")
    lines.append("")

    actions = report.get("actions", [])
    by_action = {}
    for action in actions:
        by_action.setdefault(action.get("action"), []).append(action)

    for name, title in (
        ("skip", "Needs Manual Review"),
        ("redirect", "Redirects"),
        ("noindex", "Noindex"),
        ("recreate", "Recreate"),
    ):
        group = by_action.get(name, [])
        if not group:
            continue
        lines.append(f"## {title} ({len(group)})")
        lines.append("")
        lines.append("| URL | Type | Target | Imported | Reason |")
        lines.append("|-----|------|--------|----------|--------|")
        for action in group[:preview_limit]:
            imported = action.get("contentImported")
            imported_str = "-" if imported is None else ("yes" if imported else "no")
            lines.append(
                f"| `{_md_cell(action.get('normalized'))}` | {_md_cell(action.get('type'))} "
                f"| {_md_cell(action.get('target'))} | {imported_str} | {_md_cell(action.get('reason'))} |"
            )
        if len(group) > preview_limit:
            lines.append("")
            lines.append(f"*... and {len(group) - preview_limit} more*")
        lines.append("")

    return "\n".join(lines)
