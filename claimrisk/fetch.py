"""
Page Fetch — URL to plain text

Downloads a product page and reduces it to readable text for the
analysis prompt: scripts and styles dropped, tags stripped, common
entities decoded, whitespace normalized per line, length capped.

Never raises. Failures come back as FetchResult(success=False, error=...)
and the caller falls back to URL-only research.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from html import unescape
from typing import Optional

import httpx

from claimrisk.config import settings
from claimrisk.logging import get_logger

logger = get_logger("fetch")

USER_AGENT = "Mozilla/5.0 (compatible; ClaimRiskBot/1.0)"
TRUNCATION_MARKER = "\n... (content truncated)"

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class FetchResult:
    success: bool
    content: str = ""
    error: Optional[str] = None
    status_code: Optional[int] = None


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def html_to_text(html: str, max_chars: Optional[int] = None) -> str:
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = unescape(text)

    lines = (_SPACES_RE.sub(" ", line).strip() for line in text.split("\n"))
    text = "\n".join(line for line in lines if line)

    limit = max_chars if max_chars is not None else settings.FETCH_MAX_CHARS
    return truncate_text(text, limit)


async def fetch_page_text(
    url: str,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FetchResult:
    """Fetch a URL and return its visible text."""
    headers = {
        "user-agent": USER_AGENT,
        "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }
    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=timeout or settings.FETCH_TIMEOUT,
                follow_redirects=True,
            ) as owned:
                res = await owned.get(url, headers=headers)
        else:
            res = await client.get(url, headers=headers)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Page fetch failed", extra={"url": url, "error": str(e)})
        return FetchResult(success=False, error=str(e) or type(e).__name__)

    if res.status_code != 200:
        logger.warning(
            "Page fetch returned non-200",
            extra={"url": url, "status_code": res.status_code},
        )
        return FetchResult(
            success=False, error=f"HTTP {res.status_code}", status_code=res.status_code,
        )

    return FetchResult(success=True, content=html_to_text(res.text), status_code=200)
