from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel

from tldev.config import settings

logger = logging.getLogger(__name__)

SERPAPI_BASE = "https://serpapi.com/search.json"

TRUSTED_DOMAINS = (
    "developer.mozilla.org",
    "docs.microsoft.com",
    "learn.microsoft.com",
    "cloud.google.com",
    "aws.amazon.com",
    "docs.docker.com",
    "kubernetes.io",
    "reactjs.org",
    "react.dev",
    "nodejs.org",
    "python.org",
    "typescriptlang.org",
    "github.com",
    "stackoverflow.com",
    "dev.to",
    "medium.com",
    "freecodecamp.org",
    "css-tricks.com",
    "smashingmagazine.com",
    "web.dev",
    "digitalocean.com",
)

_QUERY_STOP_WORDS = frozenset(
    "this that here there what why how the and for with from most devs "
    "developers never stop using".split()
)


class ViewMoreLink(BaseModel):
    title: str
    url: str
    snippet: str
    source: str


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.")


def score_result(link: str, snippet: str) -> int:
    domain = extract_domain(link)
    score = 0
    if any(d in domain for d in TRUSTED_DOMAINS):
        score += 10
    if domain.endswith(".org") or domain.endswith(".edu"):
        score += 5
    if "docs" in domain or "developer" in domain:
        score += 3
    if len(snippet or "") > 100:
        score += 2
    return score


def build_query(text: str, category: str) -> str:
    words = re.sub(r"[^a-zA-Z0-9\s]", " ", text).split()
    keywords = [w for w in words if len(w) > 3 and w.lower() not in _QUERY_STOP_WORDS][:4]
    return f"{' '.join(keywords)} {category} best practices tutorial".strip()


class LinkSearchClient:
    def __init__(self, api_key: str | None = None, timeout: float = 15.0):
        self.api_key = api_key if api_key is not None else settings.serpapi_key
        self.timeout = timeout

    async def fetch_link(self, text: str, category: str) -> ViewMoreLink | None:
        if not self.api_key:
            logger.warning("SerpAPI not configured, skipping link for %s", category)
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    SERPAPI_BASE,
                    params={
                        "engine": "bing",
                        "q": build_query(text, category),
                        "cc": "US",
                        "api_key": self.api_key,
                    },
                )
                response.raise_for_status()
                results = response.json().get("organic_results") or []
        except Exception:
            logger.exception("Link search failed for %s", category)
            return None

        if not results:
            return None

        best = max(
            results,
            key=lambda r: score_result(r.get("link", ""), r.get("snippet", "")),
        )
        return ViewMoreLink(
            title=best.get("title", ""),
            url=best["link"],
            snippet=(best.get("snippet") or "")[:200],
            source=extract_domain(best["link"]),
        )
