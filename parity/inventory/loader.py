#!/usr/bin/env python3
"""
Inventory Loader

Reads the two inventory files written by the inventory collector:

    reports/parity/prod-urls.json
    reports/parity/local-urls.json

Accepted shapes:

    {"schemaVersion": 1, "scannedAt": "...", "baseUrl": "...", "urls": [...]}
    [ {...}, {...} ]            # bare list, treated as schema version 1

Every entry is re-normalized here. A collector-supplied "normalized" value is
never trusted. Entries without a type are classified from their path.

Any problem with the file itself raises InventoryError before the diff stage
produces output.
"""

import hashlib
import json
import math
from pathlib import Path

from parity.errors import InventoryError
from parity.inventory.normalize import classify_url, normalize_url

SUPPORTED_SCHEMA_VERSIONS = {1}


def file_fingerprint(path: Path) -> str:
    """sha256 of the raw file bytes."""
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def _coerce_priority(value):
    if value is None or value == "":
        return None
    try:
        priority = float(value)
    except (TypeError, ValueError):
        return None
    # NaN/inf would break the priority ordering and strict JSON output
    return priority if math.isfinite(priority) else None


def build_entry(raw: dict, type_prefixes: list = None) -> dict:
    """Build a UrlEntry dict from a raw inventory record."""
    url = raw.get("url") or raw.get("rawUrl") or raw.get("loc") or ""
    pattern = raw.get("pattern") or raw.get("routeTemplate")
    normalized = normalize_url(url if url else pattern)
    content_type = raw.get("type") or raw.get("contentType")
    if not content_type:
        content_type = classify_url(normalized, type_prefixes)

    entry = {
        "url": url or pattern or "",
        "normalized": normalized,
        "type": str(content_type),
    }
    lastmod = raw.get("lastmod") or raw.get("lastModified")
    if lastmod:
        entry["lastmod"] = str(lastmod)
    priority = _coerce_priority(raw.get("priority"))
    if priority is not None:
        entry["priority"] = priority
    if pattern:
        entry["pattern"] = str(pattern)
    if raw.get("source"):
        entry["source"] = str(raw["source"])
    return entry


class InventoryLoader:
    """Loads and validates one inventory file."""

    def __init__(self, path: Path, label: str, type_prefixes: list = None):
        self.path = Path(path)
        self.label = label
        self.type_prefixes = type_prefixes

        self.schema_version = None
        self.scanned_at = None
        self.base_url = None
        self.fingerprint = None
        self.entries = []

    def load(self) -> list:
        if not self.path.exists():
            raise InventoryError(f"{self.label} inventory not found: {self.path}", self.path)
        if not self.path.is_file():
            raise InventoryError(f"{self.label} inventory is not a file: {self.path}", self.path)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise InventoryError(f"{self.label} inventory unreadable: {self.path} ({e})", self.path) from e
        except json.JSONDecodeError as e:
            raise InventoryError(
                f"{self.label} inventory is not valid JSON: {self.path} (line {e.lineno}: {e.msg})",
                self.path,
            ) from e

        if isinstance(data, list):
            records = data
            self.schema_version = 1
        elif isinstance(data, dict):
            self.schema_version = data.get("schemaVersion", 1)
            self.scanned_at = data.get("scannedAt")
            self.base_url = data.get("baseUrl")
            records = data.get("urls")
            if not isinstance(records, list):
                raise InventoryError(
                    f"{self.label} inventory has no 'urls' list: {self.path}", self.path
                )
        else:
            raise InventoryError(
                f"{self.label} inventory must be a JSON object or list: {self.path}", self.path
            )

        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise InventoryError(
                f"{self.label} inventory has unsupported schemaVersion "
                f"{self.schema_version!r} (supported: {sorted(SUPPORTED_SCHEMA_VERSIONS)}): {self.path}",
                self.path,
            )

        entries = []
        for i, record in enumerate(records):
            if not isinstance(record, dict):
                raise InventoryError(
                    f"{self.label} inventory entry #{i} is not an object: {self.path}", self.path
                )
            if not (record.get("url") or record.get("rawUrl") or record.get("loc") or record.get("pattern")
                    or record.get("routeTemplate")):
                raise InventoryError(
                    f"{self.label} inventory entry #{i} has no url or pattern: {self.path}", self.path
                )
            entries.append(build_entry(record, self.type_prefixes))

        self.fingerprint = file_fingerprint(self.path)
        self.entries = entries
        return entries

    def describe(self) -> dict:
        """Input descriptor recorded in the diff report."""
        return {
            "file": self.path.name,
            "schemaVersion": self.schema_version,
            "scannedAt": self.scanned_at,
            "baseUrl": self.base_url,
            "sha256": self.fingerprint,
            "entries": len(self.entries),
        }


def load_inventory(path: Path, label: str, type_prefixes: list = None) -> InventoryLoader:
    """Convenience wrapper: build a loader and load it."""
    loader = InventoryLoader(path, label, type_prefixes)
    loader.load()
    return loader
