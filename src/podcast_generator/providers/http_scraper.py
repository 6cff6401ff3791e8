"""HTTP article scraper.

Fetches article pages through a retry-enabled ``requests`` session and reduces
the HTML to paragraph text.
"""

from __future__ import annotations

import logging
import threading
from html.parser import HTMLParser
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.utils import requote_uri
from urllib3.util.retry import Retry

from ..exceptions import ProviderRateLimitError, ProviderRuntimeError
from .base import ScrapedArticle

logger = logging.getLogger(__name__)

DEFAULT_HTTP_BACKOFF_FACTOR = 0.5
DEFAULT_HTTP_RETRY_TOTAL = 3
HTTP_RETRY_ALLOWED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
HTTP_RETRY_STATUS_CODES = (500, 502, 503, 504)

_SKIPPED_TAGS = frozenset({"script", "style", "nav", "header", "footer", "aside", "noscript"})
_BLOCK_TAGS = frozenset({"p", "h1", "h2", "h3", "h4", "li", "blockquote"})


class _ArticleTextExtractor(HTMLParser):
    """Collect page title and block-level text, skipping page chrome."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.title_parts: List[str] = []
        self.blocks: List[str] = []
        self.loose: List[str] = []
        self._current: List[str] = []
        self._skip_depth = 0
        self._in_title = False
        self._block_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _SKIPPED_TAGS:
            self._skip_depth += 1
        elif tag == "title":
            self._in_title = True
        elif tag in _BLOCK_TAGS:
            self._block_depth += 1

    def handle_endtag(self, tag):
        if tag in _SKIPPED_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag == "title":
            self._in_title = False
        elif tag in _BLOCK_TAGS and self._block_depth:
            self._block_depth -= 1
            if not self._block_depth:
                self._flush()

    def handle_data(self, data):
        if self._skip_depth:
            return
        if self._in_title:
            self.title_parts.append(data.strip())
        elif self._block_depth and data.strip():
            self._current.append(data.strip())
        elif data.strip():
            self.loose.append(data.strip())

    def _flush(self):
        text = " ".join(self._current).strip()
        if text:
            self.blocks.append(text)
        self._current = []

    def get_title(self) -> Optional[str]:
        title = " ".join(part for part in self.title_parts if part).strip()
        return title or None

    def get_text(self) -> str:
        self._flush()
        return "\n\n".join(self.blocks)

    def get_visible_text(self) -> str:
        """All text outside skipped elements, for pages without block markup."""
        return " ".join(self.loose)


def extract_article_text(html: str) -> tuple[Optional[str], str]:
    """Return ``(title, text)`` extracted from an HTML document."""
    if not html:
        return None, ""
    extractor = _ArticleTextExtractor()
    extractor.feed(html)
    extractor.close()
    return extractor.get_title(), extractor.get_text() or extractor.get_visible_text()


def _configure_http_session(session: requests.Session) -> None:
    """Attach retry-enabled HTTP adapters to a session."""
    retry = Retry(
        total=DEFAULT_HTTP_RETRY_TOTAL,
        read=DEFAULT_HTTP_RETRY_TOTAL,
        connect=DEFAULT_HTTP_RETRY_TOTAL,
        status=DEFAULT_HTTP_RETRY_TOTAL,
        backoff_factor=DEFAULT_HTTP_BACKOFF_FACTOR,
        status_forcelist=HTTP_RETRY_STATUS_CODES,
        allowed_methods=HTTP_RETRY_ALLOWED_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)


class HttpArticleScraper:
    """ContentScraper backed by ``requests``.

    Sessions are thread-local because stage executions run on worker threads.
    429 responses are not retried in the session; they surface as
    ``ProviderRateLimitError`` so the scheduler's backoff applies instead.
    """

    def __init__(self, user_agent: str, timeout: int) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            _configure_http_session(session)
            self._local.session = session
            logger.debug("Created thread-local HTTP session %s", hex(id(session)))
        return session

    def scrape(self, url: str) -> ScrapedArticle:
        normalized_url = requote_uri(url)
        headers = {"User-Agent": self.user_agent}
        logger.debug("Fetching article %s (timeout=%s)", normalized_url, self.timeout)
        try:
            resp = self._session().get(normalized_url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderRuntimeError(
                message=f"Failed to fetch {url}: {exc}", provider="HTTP/Scraper"
            ) from exc

        try:
            if resp.status_code == 429:
                retry_after = resp.headers.get("Retry-After")
                delay = float(retry_after) if retry_after and retry_after.isdigit() else None
                raise ProviderRateLimitError(
                    message=f"429 Too Many Requests for {url}",
                    provider="HTTP/Scraper",
                    retry_after=delay,
                )
            if resp.status_code >= 400:
                error = ProviderRuntimeError(
                    message=f"HTTP {resp.status_code} for {url}", provider="HTTP/Scraper"
                )
                error.status_code = resp.status_code  # type: ignore[attr-defined]
                raise error
            title, text = extract_article_text(resp.text)
        finally:
            resp.close()

        logger.debug("Scraped %s characters from %s", len(text), normalized_url)
        return ScrapedArticle(
            content=text,
            title=title,
            url=resp.url or normalized_url,
            metadata={"content_type": resp.headers.get("Content-Type", "")},
        )
