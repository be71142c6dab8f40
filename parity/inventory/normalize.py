#!/usr/bin/env python3
"""
URL Normalizer + Route Template Matcher

Every URL is reduced to a comparison key before any diffing happens. Two URLs
are the same resource iff their keys are byte-equal.

    https://www.example.com/Blog/Post/?utm=x#top  ->  /blog/post
    http://localhost:3000/                        ->  /

Route templates come from the local inventory (dynamic routes) and match a
family of concrete keys segment-for-segment:

    /blog/:slug      matches  /blog/ramazan-2026
    /blog/:slug      rejects  /blog/ramazan-2026/extra
    /blog/[slug]     same as  /blog/:slug
    /blog/*          same as  /blog/:slug
"""

import re

# scheme://host prefix, host matched non-greedily up to the first "/"
SCHEME_HOST_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/]*")

# Next.js style dynamic segment, e.g. [slug] or [...slug]
BRACKET_SEGMENT_RE = re.compile(r"^\[(?:\.\.\.)?([^\]]+)\]$")

# Default path-prefix -> content type table (used when an entry carries no type)
DEFAULT_TYPE_PREFIXES = [
    ["/blog/", "blog"],
    ["/haberler/", "news"],
    ["/ilan/", "listing"],
    ["/mahalle/", "neighborhood"],
    ["/tip/", "property-type"],
]


# =============================================================================
# NORMALIZATION
# =============================================================================


def normalize_url(raw_url) -> str:
    """
    Canonicalize a raw URL into its comparison key.

    Total: never raises. Non-string input is treated as an empty string.
    """
    if not isinstance(raw_url, str):
        raw_url = "" if raw_url is None else str(raw_url)

    key = raw_url.strip()
    has_host = SCHEME_HOST_RE.match(key) is not None
    key = SCHEME_HOST_RE.sub("", key, count=1)
    key = key.split("?", 1)[0].split("#", 1)[0]
    key = key.lower()
    is_path = key.startswith("/")

    # Trailing slashes go (all of them, so the key is a fixed point)
    stripped = key.rstrip().rstrip("/")
    while stripped != key:
        key = stripped
        stripped = key.rstrip().rstrip("/")

    if not key and (is_path or has_host):
        return "/"
    return key


def classify_url(normalized_key: str, type_prefixes: list = None) -> str:
    """Map a normalized key to a content type by path prefix. Falls back to static."""
    prefixes = DEFAULT_TYPE_PREFIXES if type_prefixes is None else type_prefixes
    for prefix, content_type in prefixes:
        if normalized_key.startswith(prefix):
            return content_type
    return "static"


# =============================================================================
# ROUTE TEMPLATES
# =============================================================================


def is_variable_segment(segment: str) -> bool:
    # Wildcards and catch-alls still cover exactly one segment
    if segment == "*":
        return True
    if segment.startswith(":") and len(segment) > 1:
        return True
    return bool(BRACKET_SEGMENT_RE.match(segment))


class RouteTemplate:
    """
    A dynamic route compiled once into an anchored regex.

    Variable segments match exactly one non-empty, slash-free path segment.
    Literal segments match exactly. No prefix matching.
    """

    def __init__(self, template: str, content_type: str = "unknown"):
        self.template = template
        self.content_type = content_type
        self.segments = self._split(template)
        self.variable_count = sum(1 for s in self.segments if is_variable_segment(s))
        self._regex = self._compile(self.segments)

    @staticmethod
    def _split(template: str) -> list:
        path = (template or "").strip()
        path = SCHEME_HOST_RE.sub("", path, count=1)
        path = path.split("?", 1)[0].split("#", 1)[0]
        return [s for s in path.split("/") if s]

    @staticmethod
    def _compile(segments: list):
        parts = []
        for segment in segments:
            if is_variable_segment(segment):
                parts.append("[^/]+")
            else:
                parts.append(re.escape(segment.lower()))
        return re.compile("^/" + "/".join(parts) + "$")

    @property
    def is_dynamic(self) -> bool:
        return self.variable_count > 0

    def matches(self, normalized_url: str) -> bool:
        """Check a normalized key against this template."""
        return self._regex.match(normalized_url) is not None

    def __repr__(self) -> str:
        return f"RouteTemplate({self.template!r}, {self.content_type!r})"


def compile_templates(entries: list) -> list:
    """Compile the template entries of an inventory into RouteTemplate objects."""
    compiled = []
    for entry in entries:
        pattern = entry.get("pattern")
        if pattern:
            compiled.append(RouteTemplate(pattern, entry.get("type", "unknown")))
    return compiled


def matches_template(template: str, normalized_url: str) -> bool:
    """Functional form. Prefer compiling once with RouteTemplate for bulk matching."""
    return RouteTemplate(template).matches(normalize_url(normalized_url))


def find_matching_template(templates: list, normalized_url: str):
    """Return the first template that covers the key, or None."""
    for template in templates:
        if template.matches(normalized_url):
            return template
    return None
