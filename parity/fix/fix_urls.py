#!/usr/bin/env python3
"""
Parity Stage 3: Fix Runner

################################################################################
# REMEDIATION IS BEST-EFFORT AND RE-RUNNABLE.
#
# NEVER:
#   - Guess renames
#   - Redirect to a target that does not exist locally
#   - Write into the content store
#   - Abort the batch because one page failed to fetch
#
# ALWAYS:
#   - Decide exactly one action per missing URL
#   - Surface unclassified URLs as "skip" for manual triage
#   - Leave an audit trail (fix-report.json)
################################################################################

Reads the diff artifact, decides an action for every missing URL, extracts
content for recreatable blog/news pages and writes:

    reports/parity/fix-report.json
    reports/parity/fix-report.md
    reports/parity/redirect-map.json       (appended across runs)
    reports/parity/content-import.json     (records for the content importer)
    reports/parity/history/fix-report-<fingerprint>.json

Stages: load -> strategy -> extraction -> write. An interrupt is honored between
stages. Completed extractions are checkpointed to fix-checkpoint.jsonl so an
interrupted run can continue with --resume.

Usage:
    parity fix
    parity fix --no-extract
    parity fix --workers 2 --delay 1.0 --timeout 10
    parity fix --resume
    parity fix --regenerate        # rebuild redirect-map.json from this run only
"""

import argparse
import json
import signal
import sys
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path

from parity import settings
from parity.errors import DiffArtifactError, ParityInputError, RunCancelled
from parity.fix.extract import ContentExtractor, HttpFetcher, RequestSpacer
from parity.fix.strategy import RECOVERABLE_TYPES, FixStrategy, KnownTargets, load_rules
from parity.inventory.loader import InventoryLoader
from parity.report.write_report import (
    content_fingerprint,
    load_json_required,
    render_fix_markdown,
    write_history_copy,
    write_json_artifact,
    write_text_atomic,
)

FIX_REPORT_VERSION = 1
EXIT_CANCELLED = 130


# =============================================================================
# INPUTS
# =============================================================================


def load_diff_report(path: Path) -> dict:
    """Load and sanity-check the diff artifact."""
    path = Path(path)
    try:
        report = load_json_required(path)
    except FileNotFoundError as e:
        raise DiffArtifactError(f"Diff report not found: {path} (run `parity diff` first)", path) from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DiffArtifactError(f"Diff report unreadable: {path} ({e})", path) from e

    if not isinstance(report, dict):
        raise DiffArtifactError(f"Diff report must be a JSON object: {path}", path)
    missing = report.get("missing")
    if not isinstance(missing, list) or not all(isinstance(m, dict) for m in missing):
        raise DiffArtifactError(f"Diff report has no valid 'missing' list: {path}", path)
    for i, entry in enumerate(missing):
        if not entry.get("normalized"):
            raise DiffArtifactError(f"Diff report missing entry #{i} has no normalized key: {path}", path)
    return report


# =============================================================================
# CHECKPOINT
# =============================================================================


class Checkpoint:
    """
    Append-only JSONL record of finished extractions.

    The first line names the diff report it belongs to; a checkpoint written
    for a different diff report is ignored.
    """

    def __init__(self, path: Path, diff_fingerprint: str):
        self.path = Path(path)
        self.diff_fingerprint = diff_fingerprint
        self._lock = threading.Lock()

    def load(self) -> dict:
        """Return {normalized: {"record": ..., "error": ...}} for this diff report."""
        if not self.path.exists():
            return {}
        done = {}
        with open(self.path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
        if not lines:
            return {}
        try:
            header = json.loads(lines[0])
        except json.JSONDecodeError:
            return {}
        if not isinstance(header, dict):
            print(f"  WARNING: checkpoint header is not an object, ignoring: {self.path}")
            return {}
        if header.get("diffFingerprint") != self.diff_fingerprint:
            print(f"  WARNING: checkpoint belongs to a different diff report, ignoring: {self.path}")
            return {}
        for line in lines[1:]:
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                # Torn last line from a crash
                continue
            if isinstance(item, dict) and item.get("normalized"):
                done[item["normalized"]] = {"record": item.get("record"), "error": item.get("error")}
        return done

    def start(self, keep_existing: bool):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if keep_existing and self.path.exists():
            return
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(json.dumps({"diffFingerprint": self.diff_fingerprint}, sort_keys=True) + "\n")

    def append(self, normalized: str, record, error):
        line = json.dumps(
            {"normalized": normalized, "record": record, "error": error},
            sort_keys=True,
            ensure_ascii=False,
        )
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def remove(self):
        if self.path.exists():
            self.path.unlink()


# =============================================================================
# REDIRECT MAP
# =============================================================================


def merge_redirects(existing: list, new: list):
    """
    Append new mappings to an existing map. The first mapping for a source key
    wins. Returns (merged, added, conflicts).
    """
    merged = list(existing)
    by_from = {m.get("from"): m for m in merged}
    added = []
    conflicts = []
    for mapping in new:
        current = by_from.get(mapping["from"])
        if current is None:
            merged.append(mapping)
            by_from[mapping["from"]] = mapping
            added.append(mapping)
        elif current.get("to") != mapping["to"]:
            conflicts.append({"from": mapping["from"], "kept": current.get("to"), "ignored": mapping["to"]})
    return merged, added, conflicts


def load_redirect_map(path: Path) -> list:
    path = Path(path)
    if not path.exists():
        return []
    try:
        data = load_json_required(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParityInputError(f"Existing redirect map unreadable: {path} ({e})", path) from e
    if not isinstance(data, list):
        raise ParityInputError(f"Existing redirect map must be a JSON list: {path}", path)
    return data


# =============================================================================
# FIX RUNNER
# =============================================================================


class FixRunner:
    """Runs strategy + extraction for one diff report and writes the fix artifacts."""

    def __init__(
        self,
        diff_path: Path,
        local_path: Path,
        out_dir: Path,
        rules_path: Path = None,
        extractor: ContentExtractor = None,
        workers: int = settings.DEFAULT_FETCH_WORKERS,
        resume: bool = False,
        regenerate: bool = False,
        cancel_event: threading.Event = None,
        write_history: bool = True,
    ):
        self.diff_path = Path(diff_path)
        self.local_path = Path(local_path)
        self.out_dir = Path(out_dir)
        self.rules_path = rules_path
        self.extractor = extractor
        self.workers = max(1, int(workers))
        self.resume = resume
        self.regenerate = regenerate
        self.cancel_event = cancel_event or threading.Event()
        self.write_history = write_history

        self.diff_report = None
        self.diff_fingerprint = None
        self.rules = None
        self.strategy = None
        self.actions = []
        self.import_records = []
        self.existing_redirects = []

    # -------------------------------------------------------------------------

    def _check_cancelled(self, next_stage: str):
        if self.cancel_event.is_set():
            raise RunCancelled(f"Run cancelled before {next_stage}")

    def load_inputs(self):
        """Load every input before anything is written."""
        self.diff_report = load_diff_report(self.diff_path)
        self.diff_fingerprint = content_fingerprint(self.diff_report)
        self.rules = load_rules(self.rules_path)

        local_loader = InventoryLoader(self.local_path, "Local", self.rules.get("type_prefixes"))
        local_entries = local_loader.load()
        self.strategy = FixStrategy(self.rules, KnownTargets.from_entries(local_entries))

        redirect_path = self.out_dir / settings.REDIRECT_MAP_NAME
        self.existing_redirects = [] if self.regenerate else load_redirect_map(redirect_path)

    def decide_all(self) -> list:
        self.actions = [self.strategy.decide(entry) for entry in self.diff_report["missing"]]
        return self.actions

    def extraction_candidates(self) -> list:
        return [a for a in self.actions if a["action"] == "recreate" and a["type"] in RECOVERABLE_TYPES]

    def _extract_one(self, action: dict):
        if self.cancel_event.is_set():
            # Queued before the interrupt; leave it for --resume
            return None
        # Prefer the observed production URL; fall back to the key
        return self.extractor.try_extract(action.get("url") or action["normalized"])

    def extract_all(self) -> dict:
        """Run extraction with a bounded worker pool. Returns {normalized: result}."""
        candidates = self.extraction_candidates()
        checkpoint = Checkpoint(self.out_dir / settings.CHECKPOINT_NAME, self.diff_fingerprint)

        results = checkpoint.load() if self.resume else {}
        todo = [a for a in candidates if a["normalized"] not in results]
        if results:
            print(f"  Resuming: {len(candidates) - len(todo)} already done, {len(todo)} to fetch")
        checkpoint.start(keep_existing=self.resume and bool(results))

        total = len(todo)
        completed = 0
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="parity-extract")
        try:
            futures = {executor.submit(self._extract_one, action): action for action in todo}
            pending = set(futures)
            while pending:
                if self.cancel_event.is_set():
                    for future in pending:
                        future.cancel()
                done, pending = wait(pending, timeout=0.25, return_when=FIRST_COMPLETED)
                for future in done:
                    if future.cancelled():
                        continue
                    action = futures[future]
                    try:
                        outcome = future.result()
                    except Exception as e:
                        outcome = None, f"extraction error: {e.__class__.__name__}: {e}"
                    if outcome is None:
                        continue
                    record, error = outcome
                    results[action["normalized"]] = {"record": record, "error": error}
                    checkpoint.append(action["normalized"], record, error)
                    completed += 1
                    status = "[OK]" if record else f"[FAIL] {error}"
                    print(f"  [{completed}/{total}] {action['type']}: {action['normalized']} {status}")
                if self.cancel_event.is_set():
                    pending = {f for f in pending if not f.cancelled()}
        finally:
            executor.shutdown(wait=True)
            self.extractor.close()

        if self.cancel_event.is_set() and completed < total:
            raise RunCancelled(
                f"Run cancelled during extraction ({completed}/{total} done, checkpoint kept: {checkpoint.path})"
            )
        return results

    def apply_extraction(self, results: dict):
        records = []
        for action in self.actions:
            outcome = results.get(action["normalized"])
            if outcome is None:
                continue
            record = outcome.get("record")
            if record:
                action["contentImported"] = True
                records.append(dict(record, url=action["url"], normalized=action["normalized"], type=action["type"]))
            else:
                error = outcome.get("error") or "no content extracted"
                action["contentImported"] = False
                action["error"] = error
                action["reason"] = f"{action['reason']}; content extraction failed: {error}"
        self.import_records = records

    def build_redirects(self) -> list:
        status = self.rules.get("redirect_status", 301)
        return [
            {
                "from": a["normalized"],
                "to": a["target"],
                "status": status,
                "reason": a["reason"],
            }
            for a in self.actions
            if a["action"] == "redirect"
        ]

    def build_report(self, redirects: list) -> dict:
        counts = {"recreate": 0, "redirect": 0, "noindex": 0, "skip": 0}
        for a in self.actions:
            counts[a["action"]] += 1
        return {
            "reportVersion": FIX_REPORT_VERSION,
            "generatedAt": self.diff_report.get("generatedAt"),
            "diffReport": {
                "generatedAt": self.diff_report.get("generatedAt"),
                "fingerprint": self.diff_fingerprint,
            },
            "rules": self.rules.get("source"),
            "total": len(self.actions),
            "recreated": counts["recreate"],
            "redirected": counts["redirect"],
            "noindexed": counts["noindex"],
            "skipped": counts["skip"],
            "contentImported": sum(1 for a in self.actions if a.get("contentImported") is True),
            "extractionFailed": sum(1 for a in self.actions if a.get("contentImported") is False),
            "actions": self.actions,
            "redirects": redirects,
        }

    def run(self) -> dict:
        print("Loading inputs...")
        self.load_inputs()
        missing = self.diff_report["missing"]
        print(f"  Diff report: {len(missing)} missing URLs")
        print(f"  Rules: {self.rules.get('source')}")
        print()

        self._check_cancelled("strategy")
        print("Deciding remediation...")
        self.decide_all()
        for i, action in enumerate(self.actions, 1):
            target = f" -> {action['target']}" if action.get("target") else ""
            print(f"  [{i}/{len(self.actions)}] {action['type']}: {action['normalized']} {action['action'].upper()}{target}")
        print()

        self._check_cancelled("extraction")
        extracted = False
        if self.extractor is not None and self.extraction_candidates():
            print(f"Extracting content ({self.workers} workers)...")
            results = self.extract_all()
            self.apply_extraction(results)
            extracted = True
            print()
        elif self.extractor is None:
            print("Content extraction disabled")
            print()

        self._check_cancelled("writing artifacts")
        redirects = self.build_redirects()
        report = self.build_report(redirects)

        redirect_path = self.out_dir / settings.REDIRECT_MAP_NAME
        merged, added, conflicts = merge_redirects(self.existing_redirects, redirects)
        for conflict in conflicts:
            print(f"  WARNING: redirect for {conflict['from']} already maps to {conflict['kept']}; "
                  f"keeping it over {conflict['ignored']}")

        json_path = write_json_artifact(self.out_dir / settings.FIX_JSON_NAME, report)
        md_path = self.out_dir / settings.FIX_MD_NAME
        write_text_atomic(md_path, render_fix_markdown(report))
        write_json_artifact(redirect_path, merged)

        import_path = None
        if extracted:
            import_path = write_json_artifact(self.out_dir / settings.IMPORT_BUNDLE_NAME, self.import_records)
            Checkpoint(self.out_dir / settings.CHECKPOINT_NAME, self.diff_fingerprint).remove()

        history_path = None
        if self.write_history:
            history_path, _ = write_history_copy(self.out_dir / settings.HISTORY_DIR_NAME, "fix-report", report)

        return {
            "report": report,
            "json_path": json_path,
            "md_path": md_path,
            "redirect_path": redirect_path,
            "redirects_added": len(added),
            "redirects_total": len(merged),
            "import_path": import_path,
            "history_path": history_path,
        }


# =============================================================================
# CLI
# =============================================================================


def build_parser(parser: argparse.ArgumentParser = None) -> argparse.ArgumentParser:
    if parser is None:
        parser = argparse.ArgumentParser(
            prog="parity fix",
            description="Decide and stage remediation for URLs missing locally",
        )
    parser.add_argument("--diff", help="Diff report JSON (default: <out>/diff-report.json)")
    parser.add_argument("--local", help="Local inventory JSON (default: <out>/local-urls.json)")
    parser.add_argument("--out", help="Artifacts directory (default: $PARITY_ARTIFACTS_DIR or reports/parity)")
    parser.add_argument("--rules", help="Remediation rule table JSON (default: bundled example rules)")
    parser.add_argument("--base-url", help="Production origin for relative URLs (default: $PARITY_PROD_BASE_URL)")
    parser.add_argument("--workers", type=int, help="Max in-flight extraction requests")
    parser.add_argument("--delay", type=float, help="Min seconds between request starts")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument("--no-extract", action="store_true", help="Decide actions only, fetch nothing")
    parser.add_argument("--resume", action="store_true", help="Continue from fix-checkpoint.jsonl")
    parser.add_argument("--regenerate", action="store_true", help="Rebuild redirect-map.json from this run only")
    parser.add_argument("--no-history", action="store_true", help="Skip the history/ snapshot copy")
    return parser


def install_interrupt_handler(cancel_event: threading.Event):
    """
    First Ctrl-C requests a stop between stages; the second one is immediate.
    Returns the previous handler so the caller can restore it.
    """

    def handler(signum, frame):
        if cancel_event.is_set():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        print("\nInterrupt received; stopping after in-flight requests finish (Ctrl-C again to force)")
        cancel_event.set()

    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, handler)
    return previous


def run_from_args(args) -> int:
    settings.load_env()
    conf = settings.get_settings()

    out_dir = Path(args.out) if args.out else conf["artifacts_dir"]
    diff_path = Path(args.diff) if args.diff else out_dir / settings.DIFF_JSON_NAME
    local_path = Path(args.local) if args.local else out_dir / settings.LOCAL_INVENTORY_NAME
    base_url = (args.base_url or conf["prod_base_url"]).rstrip("/")
    workers = args.workers if args.workers else conf["fetch_workers"]
    delay = args.delay if args.delay is not None else conf["fetch_delay"]
    timeout = args.timeout if args.timeout else conf["fetch_timeout"]

    print("=" * 70)
    print("PARITY FIX - Stage 3")
    print("=" * 70)
    print()
    print(f"Diff report:     {diff_path}")
    print(f"Local inventory: {local_path}")
    print(f"Artifacts dir:   {out_dir}")
    if args.no_extract:
        print("Extraction:      disabled")
    else:
        print(f"Extraction:      {base_url} (workers={workers}, delay={delay}s, timeout={timeout}s)")
    print()

    extractor = None
    if not args.no_extract:
        fetcher = HttpFetcher(conf["user_agent"], timeout, RequestSpacer(delay))
        extractor = ContentExtractor(fetcher, base_url)

    cancel_event = threading.Event()
    handler_installed = threading.current_thread() is threading.main_thread()
    previous_handler = install_interrupt_handler(cancel_event) if handler_installed else None

    runner = FixRunner(
        diff_path,
        local_path,
        out_dir,
        rules_path=args.rules,
        extractor=extractor,
        workers=workers,
        resume=args.resume,
        regenerate=args.regenerate,
        cancel_event=cancel_event,
        write_history=not args.no_history,
    )

    try:
        result = runner.run()
    except ParityInputError as e:
        print(f"ERROR: {e}")
        return 1
    except RunCancelled as e:
        print()
        print(f"CANCELLED: {e}")
        print("No fix artifacts were written. Re-run with --resume to continue.")
        return EXIT_CANCELLED
    finally:
        if handler_installed:
            signal.signal(signal.SIGINT, previous_handler if previous_handler is not None else signal.SIG_DFL)

    report = result["report"]
    print(f"Fix JSON: {result['json_path']}")
    print(f"Fix summary: {result['md_path']}")
    print(f"Redirect map: {result['redirect_path']} (+{result['redirects_added']}, {result['redirects_total']} total)")
    if result["import_path"]:
        print(f"Import bundle: {result['import_path']}")
    if result["history_path"]:
        print(f"History copy: {result['history_path']}")
    print()

    print("=" * 70)
    print("FIX SUMMARY")
    print("=" * 70)
    print(f"Total processed:  {report['total']}")
    print(f"  Recreate:       {report['recreated']}")
    print(f"  Redirect:       {report['redirected']}")
    print(f"  Noindex:        {report['noindexed']}")
    print(f"  Skip:           {report['skipped']}")
    print(f"Content staged:   {report['contentImported']}")
    print(f"Extraction failed: {report['extractionFailed']}")
    print()

    skipped = [a for a in report["actions"] if a["action"] == "skip"]
    if skipped:
        print("Needs manual review:")
        for a in skipped[:10]:
            print(f"  - {a['normalized']} ({a['type']})")
        if len(skipped) > 10:
            print(f"  ... and {len(skipped) - 10} more")
        print()

    print("Done.")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return run_from_args(args)


if __name__ == "__main__":
    sys.exit(main())
