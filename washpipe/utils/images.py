"""
Image URL filtering for scraped pages.

Crawl results list every image on a page; most are icons, tracking pixels
and logos. Only real photo formats survive.
"""

import re
from typing import Iterable, List, Optional

_PHOTO_EXT_RE = re.compile(r"\.(?:jpe?g|png|webp)(?:[?#].*)?$", re.IGNORECASE)

_JUNK_MARKERS = (
    "favicon",
    "icon",
    "facebook",
    "twitter",
    "google-analytics",
    "pixel",
    "1x1",
    "spacer",
)


def _is_junk(url: str) -> bool:
    lowered = url.lower()
    if any(marker in lowered for marker in _JUNK_MARKERS):
        return True
    if ".svg" in lowered and "logo" in lowered:
        return True
    return False


def filter_images(urls: Optional[Iterable[str]], limit: int = 10) -> List[str]:
    """
    Keep usable photo URLs from a scraped page.

    Args:
        urls: Image URLs reported by the crawl provider
        limit: Maximum number of photos to keep

    Returns:
        De-duplicated jpg/jpeg/png/webp URLs in page order, at most ``limit``

    Example:
        >>> filter_images([
        ...     "https://wash1.com/favicon.png",
        ...     "https://wash1.com/img/bay.jpg?w=800",
        ...     "https://wash1.com/logo.svg",
        ... ])
        ['https://wash1.com/img/bay.jpg?w=800']
    """
    kept: List[str] = []
    seen = set()
    for url in urls or []:
        if not isinstance(url, str) or not url.strip():
            continue
        url = url.strip()
        if url in seen or _is_junk(url) or not _PHOTO_EXT_RE.search(url):
            continue
        seen.add(url)
        kept.append(url)
        if len(kept) >= limit:
            break
    return kept
