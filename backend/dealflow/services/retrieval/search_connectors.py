from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlparse

import httpx

from dealflow.config import Settings
from dealflow.services.research.types import Candidate
from dealflow.utils.identity import normalize_website

logger = logging.getLogger(__name__)


def _domain_label(url: str) -> str:
    parsed = urlparse(url)
    host = str(parsed.netloc or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return "Unknown"
    return host.split(".")[0].replace("-", " ").title()


def _site_root(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    return f"{parsed.scheme}://{parsed.netloc}"


def _to_candidates(items: List[Dict[str, Any]]) -> List[Candidate]:
    rows: List[Candidate] = []
    for item in items:
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        rows.append(
            Candidate(
                name=str(item.get("title") or _domain_label(url)).strip()[:255],
                website=_site_root(url),
                summary=str(item.get("snippet") or "").strip()[:400] or None,
                source_urls=[url],
                confidence=0.3,
            )
        )
    return rows


def _search_tavily(settings: Settings, query: str, cap: int) -> List[Dict[str, Any]]:
    if not settings.tavily_api_key:
        return []
    payload = {
        "api_key": settings.tavily_api_key,
        "query": query,
        "max_results": max(1, min(cap, 20)),
        "include_answer": False,
        "include_images": False,
    }
    with httpx.Client(timeout=15) as client:
        resp = client.post("https://api.tavily.com/search", json=payload)
        resp.raise_for_status()
        data = resp.json()
    results: List[Dict[str, Any]] = []
    for item in data.get("results", [])[:cap]:
        if not isinstance(item, dict):
            continue
        results.append({"title": item.get("title"), "url": item.get("url"), "snippet": item.get("content")})
    return results


def _search_serpapi(settings: Settings, query: str, cap: int) -> List[Dict[str, Any]]:
    if not settings.serpapi_api_key:
        return []
    params = {
        "engine": "google",
        "q": query,
        "api_key": settings.serpapi_api_key,
        "num": max(1, min(cap, 20)),
    }
    with httpx.Client(timeout=15) as client:
        resp = client.get("https://serpapi.com/search.json", params=params)
        resp.raise_for_status()
        data = resp.json()
    results: List[Dict[str, Any]] = []
    for item in data.get("organic_results", [])[:cap]:
        if not isinstance(item, dict):
            continue
        results.append({"title": item.get("title"), "url": item.get("link"), "snippet": item.get("snippet")})
    return results


def search_external_candidates(settings: Settings, query: str, cap: int) -> List[Candidate]:
    """Web search fallback: Tavily first, then SerpAPI, one candidate per site."""
    candidates: List[Candidate] = []
    for name, connector in (("tavily", _search_tavily), ("serpapi", _search_serpapi)):
        try:
            candidates.extend(_to_candidates(connector(settings, query, cap)))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s search failed for %r: %s", name, query, exc)

    seen = set()
    unique: List[Candidate] = []
    for candidate in candidates:
        key = normalize_website(candidate.website)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique[:cap]
