"""URL extraction and suspicious-link heuristics."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

TAG_SHORTLINK = "SHORTLINK"
TAG_WEBHOOK_LIKE = "WEBHOOK_LIKE"
TAG_TRACKING = "TRACKING_OR_REFERRAL"

SHORTENER_HOSTS = frozenset(
    {
        "t.co",
        "bit.ly",
        "tinyurl.com",
        "goo.gl",
        "is.gd",
        "ow.ly",
        "buff.ly",
        "rebrand.ly",
        "linktr.ee",
    }
)

_URL_RE = re.compile(r"https?://[^\s)\]}>\"']+", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[.,;:!?]+$")
_UTM_RE = re.compile(r"\butm_[a-z_]+=")
_REFERRAL_RE = re.compile(r"[?&](ref|aff|affiliate|invite|code)=", re.IGNORECASE)


def extract_urls(text: str, max_urls: int = 50) -> list[str]:
    """Return distinct ``http(s)`` URLs in first-seen order."""
    urls: list[str] = []
    for match in _URL_RE.finditer(text or ""):
        url = _TRAILING_PUNCT_RE.sub("", match.group(0).strip())
        if url and url not in urls:
            urls.append(url)
        if len(urls) >= max_urls:
            break
    return urls


def classify_url(url: str) -> list[str]:
    """Return heuristic tags for ``url``; an empty list means unremarkable."""
    tags: list[str] = []
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        logger.debug("cannot parse url %r; hostname checks skipped", url)
    else:
        if host in SHORTENER_HOSTS:
            tags.append(TAG_SHORTLINK)
        if "hooks." in host or "/webhook" in parts.path:
            tags.append(TAG_WEBHOOK_LIKE)

    if _UTM_RE.search(url) or _REFERRAL_RE.search(url):
        tags.append(TAG_TRACKING)
    return tags
