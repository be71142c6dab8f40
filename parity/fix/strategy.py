#!/usr/bin/env python3
"""
Parity Stage 3a: Remediation Strategy Engine

################################################################################
# STRATEGY IS PURE. NO NETWORK, NO FILE WRITES.
# decide() reads only the rule table and the set of known local targets.
################################################################################

For each missing production URL, picks exactly one action. First matching rule
wins:

    R1   blog / news                                   -> recreate
    R0N  key matches a configured noindex pattern      -> noindex   (empty by default)
    R2   static + obsolete pattern + resolvable target -> redirect
    R3   static + important page                       -> recreate
    R4   static                                        -> recreate
    R5   listing / neighborhood / property-type        -> recreate
    R6   anything else                                 -> skip

Reasons are fixed per rule. The pattern lists and the semantic redirect map
are data (configs/remediation_rules.json), not code.
"""

import json
from pathlib import Path

from parity.errors import RulesError
from parity.inventory.normalize import RouteTemplate, normalize_url

CONFIGS_DIR = Path(__file__).resolve().parent.parent / "configs"
DEFAULT_RULES_PATH = CONFIGS_DIR / "remediation_rules.json"

ACTIONS = ("recreate", "redirect", "noindex", "skip")

RECOVERABLE_TYPES = {"blog", "news"}
DATA_BACKED_TYPES = {"listing", "neighborhood", "property-type"}

REASONS = {
    "R1": "Indexed {type} content; recreate to preserve accrued ranking signal",
    "R0N": "Matches a configured noindex pattern; keep out of the index",
    "R2": "Obsolete static page; redirect to its replacement",
    "R3": "Important static page; required for site completeness",
    "R4": "Static page; recreate rather than lose it",
    "R5": "Missing data-backed {type} page; flag for data-migration review",
    "R6": "Unclassified content type '{type}'; requires manual classification",
}

DEFAULT_RULES = {
    "redirect_status": 301,
    "obsolete_patterns": [],
    "important_pages": [],
    "semantic_redirects": {},
    "noindex_patterns": [],
    "type_prefixes": None,
}


# =============================================================================
# RULE TABLE
# =============================================================================


def load_rules(path: Path = None) -> dict:
    """Load and validate a rule table. Missing keys fall back to empty defaults."""
    path = Path(path) if path else DEFAULT_RULES_PATH
    if not path.exists():
        raise RulesError(f"Rule file not found: {path}", path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RulesError(f"Rule file unreadable: {path} ({e})", path) from e
    if not isinstance(data, dict):
        raise RulesError(f"Rule file must be a JSON object: {path}", path)

    rules = dict(DEFAULT_RULES)
    for key in DEFAULT_RULES:
        if key in data:
            rules[key] = data[key]

    for key in ("obsolete_patterns", "important_pages", "noindex_patterns"):
        value = rules[key]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise RulesError(f"Rule '{key}' must be a list of strings: {path}", path)
        rules[key] = [v.lower() for v in value if v.strip()]

    redirects = rules["semantic_redirects"]
    if not isinstance(redirects, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in redirects.items()
    ):
        raise RulesError(f"Rule 'semantic_redirects' must map strings to strings: {path}", path)
    rules["semantic_redirects"] = {k.lower(): v for k, v in redirects.items()}

    if rules["redirect_status"] not in (301, 302):
        raise RulesError(f"Rule 'redirect_status' must be 301 or 302: {path}", path)

    prefixes = rules["type_prefixes"]
    if prefixes is not None:
        if not isinstance(prefixes, list) or not all(
            isinstance(p, list) and len(p) == 2 and all(isinstance(s, str) for s in p) for p in prefixes
        ):
            raise RulesError(f"Rule 'type_prefixes' must be a list of [prefix, type] pairs: {path}", path)

    rules["source"] = path.name
    return rules


def entry_type(entry: dict) -> str:
    content_type = entry.get("type")
    if content_type is None or content_type == "":
        return "unknown"
    return content_type if isinstance(content_type, str) else str(content_type)


# =============================================================================
# KNOWN TARGETS
# =============================================================================


class KnownTargets:
    """Local literal keys plus compiled local templates; the only valid redirect targets."""

    def __init__(self, literal_keys=None, templates=None):
        self.literal_keys = set(literal_keys or [])
        self.templates = list(templates or [])

    @classmethod
    def from_entries(cls, local_entries: list) -> "KnownTargets":
        literal_keys = set()
        templates = []
        for entry in local_entries:
            if entry.get("pattern"):
                templates.append(RouteTemplate(entry["pattern"], entry.get("type", "unknown")))
            else:
                literal_keys.add(entry["normalized"])
        return cls(literal_keys, templates)

    def __contains__(self, key: str) -> bool:
        if key in self.literal_keys:
            return True
        return any(t.matches(key) for t in self.templates)


# =============================================================================
# STRATEGY ENGINE
# =============================================================================


class FixStrategy:
    """Decides one FixAction per missing UrlEntry."""

    def __init__(self, rules: dict, known_targets: KnownTargets):
        self.rules = rules
        self.known_targets = known_targets

    def _action(self, entry: dict, key: str, action: str, rule_id: str, target: str = None) -> dict:
        content_type = entry_type(entry)
        result = {
            "url": entry.get("url", ""),
            "normalized": key,
            "type": content_type,
            "action": action,
            "ruleId": rule_id,
            "reason": REASONS[rule_id].format(type=content_type),
        }
        if target is not None:
            result["target"] = target
        return result

    def is_obsolete(self, key: str) -> bool:
        return any(pattern in key for pattern in self.rules["obsolete_patterns"])

    def is_important(self, key: str) -> bool:
        for page in self.rules["important_pages"]:
            if key == page or key.startswith(page.rstrip("/") + "/"):
                return True
        return False

    def is_noindex(self, key: str) -> bool:
        return any(pattern in key for pattern in self.rules["noindex_patterns"])

    def resolve_semantic_target(self, key: str):
        """Return a normalized redirect target known to exist locally, or None."""
        for source in sorted(self.rules["semantic_redirects"]):
            if source not in key:
                continue
            target = normalize_url(self.rules["semantic_redirects"][source])
            if target and target != key and target in self.known_targets:
                return target
        return None

    def decide(self, entry: dict) -> dict:
        content_type = entry_type(entry)
        key = entry.get("normalized")
        if not isinstance(key, str) or not key:
            key = normalize_url(entry.get("url", ""))

        if content_type in RECOVERABLE_TYPES:
            return self._action(entry, key, "recreate", "R1")

        if self.rules["noindex_patterns"] and self.is_noindex(key):
            return self._action(entry, key, "noindex", "R0N")

        if content_type == "static":
            if self.is_obsolete(key):
                target = self.resolve_semantic_target(key)
                if target:
                    return self._action(entry, key, "redirect", "R2", target=target)
            if self.is_important(key):
                return self._action(entry, key, "recreate", "R3")
            return self._action(entry, key, "recreate", "R4")

        if content_type in DATA_BACKED_TYPES:
            return self._action(entry, key, "recreate", "R5")

        return self._action(entry, key, "skip", "R6")
