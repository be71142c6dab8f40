#!/usr/bin/env python3
"""
Parity Stage 3b: Content Extractor

Fetches a live production page and pulls out reusable structured content for
the external content importer:

    title, description, content (plain text), headings,
    slug, publishedAt, tags

Only used for "recreate" actions on recoverable types (blog, news). This module
never writes to the content store; it only prepares records.

The HTTP fetch is an injected capability: anything with a
fetch(url) -> response method, where response has .status_code and .text.
HttpFetcher is the requests-backed default. Tests inject a fake.
"""

import re
import threading
import time
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from parity.inventory.normalize import normalize_url
from parity.utils import parse_timestamp, slug_from_key

MAX_CONTENT_CHARS = 10000
MAX_HEADINGS = 20
MAX_TAGS = 10

CONTENT_SELECTOR = "article, .content, main, #content, .post-content"
STRIP_SELECTOR = "script, style, noscript, template, nav, header, footer, .sidebar, .comments, .share-buttons"
DATE_TEXT_SELECTOR = ".published-date, .date"
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


# =============================================================================
# HTTP FETCH
# =============================================================================


class RequestSpacer:
    """
    Enforces a minimum interval between request starts across all workers.

    Thread-safe. clock/sleep are injectable for tests.
    """

    def __init__(self, min_interval: float, clock=time.monotonic, sleep=time.sleep):
        self.min_interval = max(0.0, float(min_interval))
        self.clock = clock
        self.sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = None

    def wait(self):
        if self.min_interval <= 0:
            return
        with self._lock:
            now = self.clock()
            if self._next_slot is None or self._next_slot <= now:
                self._next_slot = now + self.min_interval
                return
            delay = self._next_slot - now
            self._next_slot += self.min_interval
        self.sleep(delay)


class HttpFetcher:
    """
    requests-backed fetch capability.

    One Session per worker thread. Every request carries the parity client
    signature and a hard timeout. No retries. close() releases every
    session opened so far.
    """

    def __init__(self, user_agent: str, timeout: float, spacer: RequestSpacer = None):
        self.user_agent = user_agent
        self.timeout = timeout
        self.spacer = spacer
        self._local = threading.local()
        self._sessions = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update({
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml",
            })
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def fetch(self, url: str) -> requests.Response:
        if self.spacer is not None:
            self.spacer.wait()
        return self._session().get(url, timeout=self.timeout)

    def close(self):
        with self._lock:
            sessions, self._sessions = self._sessions, []
            self._local = threading.local()
        for session in sessions:
            session.close()


# =============================================================================
# EXTRACTION
# =============================================================================


class ExtractionFailed(Exception):
    """A single page could not be turned into content. Never fatal to a run."""
    pass


def _clean_text(text: str) -> str:
    return " ".join((text or "").split())


def _meta_content(soup, *, name: str = None, prop: str = None):
    if name:
        tag = soup.find("meta", attrs={"name": name})
    else:
        tag = soup.find("meta", attrs={"property": prop})
    if tag and tag.get("content"):
        value = _clean_text(tag["content"])
        return value or None
    return None


class ContentExtractor:
    """Turns one production URL into an import-ready content record."""

    def __init__(
        self,
        fetcher,
        base_url: str,
        max_content_chars: int = MAX_CONTENT_CHARS,
        max_headings: int = MAX_HEADINGS,
    ):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.max_content_chars = max_content_chars
        self.max_headings = max_headings
        host = urlparse(self.base_url).netloc
        self._host_link_re = None
        if host:
            bare_host = host[4:] if host.startswith("www.") else host
            self._host_link_re = re.compile(
                r"https?://(?:www\.)?" + re.escape(bare_host) + r"\S*", re.IGNORECASE
            )

    def close(self):
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            close()

    def full_url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return urljoin(self.base_url + "/", url.lstrip("/"))

    def fetch_document(self, url: str) -> str:
        """
        GET the page. Raises ExtractionFailed on a non-2xx status.
        Transport errors (requests.RequestException) propagate.
        """
        response = self.fetcher.fetch(self.full_url(url))
        status = getattr(response, "status_code", None)
        if status is None or not 200 <= int(status) < 300:
            raise ExtractionFailed(f"HTTP {status}")
        return response.text or ""

    def parse(self, html: str, url: str) -> dict:
        """Extract the content record from an HTML document."""
        soup = BeautifulSoup(html, "html.parser")

        title = None
        if soup.title and soup.title.get_text(strip=True):
            title = _clean_text(soup.title.get_text(" ", strip=True))
        if not title:
            h1 = soup.find("h1")
            if h1 and h1.get_text(strip=True):
                title = _clean_text(h1.get_text(" ", strip=True))
        if not title:
            title = _meta_content(soup, prop="og:title")

        description = _meta_content(soup, name="description") or _meta_content(soup, prop="og:description")

        published_at = None
        published_raw = _meta_content(soup, prop="article:published_time")
        if not published_raw:
            time_tag = soup.find("time", attrs={"datetime": True})
            if time_tag:
                published_raw = time_tag.get("datetime")
        if not published_raw:
            date_node = soup.select_one(DATE_TEXT_SELECTOR)
            if date_node:
                published_raw = _clean_text(date_node.get_text(" ", strip=True))
        parsed = parse_timestamp(published_raw)
        if parsed is not None:
            published_at = parsed.isoformat()

        tags = []
        for tag in soup.find_all("meta", attrs={"property": "article:tag"}):
            value = _clean_text(tag.get("content", ""))
            if value and value not in tags:
                tags.append(value)
        for anchor in soup.select(".tags a, .categories a"):
            value = _clean_text(anchor.get_text(" ", strip=True))
            if value and value not in tags:
                tags.append(value)

        region = soup.select_one(CONTENT_SELECTOR) or soup.body or soup
        for node in region.select(STRIP_SELECTOR):
            node.decompose()

        headings = []
        for heading in region.find_all(HEADING_TAGS):
            text = _clean_text(heading.get_text(" ", strip=True))
            if text and text not in headings:
                headings.append(text)

        content = _clean_text(region.get_text(" ", strip=True))
        if self._host_link_re is not None:
            content = _clean_text(self._host_link_re.sub("", content))
        content = content[: self.max_content_chars]

        if not title and not content:
            raise ExtractionFailed("document has no title and no content")

        return {
            "title": title,
            "description": description,
            "content": content,
            "headings": headings[: self.max_headings],
            "slug": slug_from_key(normalize_url(url)),
            "publishedAt": published_at,
            "tags": tags[:MAX_TAGS],
        }

    def extract(self, url: str):
        """
        Fetch and extract. Returns the content record, or None when the
        production page answered with a non-2xx status.
        """
        try:
            html = self.fetch_document(url)
            return self.parse(html, url)
        except ExtractionFailed:
            return None

    def try_extract(self, url: str):
        """
        Never raises for per-page problems.

        Returns (record, None) on success and (None, error_text) on any
        network, status or parse failure.
        """
        try:
            html = self.fetch_document(url)
            return self.parse(html, url), None
        except ExtractionFailed as e:
            return None, str(e)
        except requests.Timeout:
            return None, "request timed out"
        except requests.RequestException as e:
            return None, f"request failed: {e.__class__.__name__}"
