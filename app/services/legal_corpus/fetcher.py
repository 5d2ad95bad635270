"""
Legal source fetcher.

Downloads a source document over HTTP and turns HTML into plain text that
the unit parser can segment. The raw body is hashed upstream, before any
cleanup, so the change fingerprint tracks exactly what the server sent.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup, NavigableString

from app.core.config import get_settings
from app.core.errors import FetchError

logger = logging.getLogger(__name__)

HTML_HINT_RE = re.compile(r"<\s*(?:html|body|div|p|br|article|section|span)\b", re.IGNORECASE)
WHITESPACE_RE = re.compile(r"\s+")
BLOCK_TAGS = [
    "p", "div", "li", "br", "h1", "h2", "h3", "h4", "h5", "h6", "tr",
    "ul", "ol", "dd", "dt", "table", "section", "article", "blockquote",
]


@dataclass
class FetchedDocument:
    url: str
    raw_content: str
    content_type: str = ""

    @property
    def is_html(self) -> bool:
        if "html" in self.content_type.lower():
            return True
        return bool(HTML_HINT_RE.search(self.raw_content[:4096]))


def html_to_text(html: str) -> str:
    """
    Strip markup, scripts and styles; one block element per line.

    Inline elements (links, spans, superscripts) stay on the line of the
    surrounding text.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "head"]):
        tag.decompose()
    for node in soup.find_all(string=True):
        if type(node) is NavigableString:
            node.replace_with(WHITESPACE_RE.sub(" ", str(node)))
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    lines = [line.strip() for line in soup.get_text().split("\n")]
    return "\n".join(line for line in lines if line)


def document_text(document: FetchedDocument) -> str:
    """Plain text of a fetched document."""
    if document.is_html:
        return html_to_text(document.raw_content)
    return document.raw_content.strip()


class SourceFetcher:
    """
    HTTP fetcher for legal sources.

    Args:
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.user_agent = settings.ingestion_user_agent
        self.timeout = settings.fetch_timeout_seconds
        self.transport = transport

    async def fetch(self, url: str) -> FetchedDocument:
        """Fetch one source. Raises FetchError on network or HTTP errors."""
        headers = {"User-Agent": self.user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise FetchError(url, str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}")

        logger.debug("Fetched %s (%d bytes)", url, len(response.content))
        return FetchedDocument(
            url=url,
            raw_content=response.text,
            content_type=response.headers.get("content-type", ""),
        )
