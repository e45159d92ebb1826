"""
URL utility functions for the Washpipe pipeline.

This module provides the URL normalizer used to join scraped pages back to
listings, and the skip-list of directory/social domains that are never
worth sending to the crawl provider.
"""

import re
from typing import List, Optional
from urllib.parse import urlparse
from washpipe.core.logging import get_logger

logger = get_logger(__name__)


# Directory, social, map and review domains that never yield classifiable content.
SKIP_DOMAINS = (
    "facebook.com",
    "yelp.com",
    "google.com",
    "yellowpages.com",
    "bbb.org",
    "instagram.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "youtube.com",
    "maps.apple.com",
    "map.bp.com",
    "mapquest.com",
    "maps.google.com",
    "linkedin.com",
    "pinterest.com",
    "nextdoor.com",
    "foursquare.com",
    "tripadvisor.com",
    "angieslist.com",
    "homeadvisor.com",
    "thumbtack.com",
    "citysearch.com",
    "superpages.com",
    "whitepages.com",
    "manta.com",
)

_SCHEME_WWW_RE = re.compile(r"^(?:https?://)?(?:www\.)?", re.IGNORECASE)


def _parse(raw: str):
    text = raw.strip()
    if "://" not in text:
        text = f"http://{text}"
    return urlparse(text)


def normalize_url(raw: Optional[str]) -> str:
    """
    Build the comparison key for a URL.

    The key is the lowercased host without a leading ``www.``, followed by the
    path with trailing slashes removed. Scheme, port, query string and
    fragment are discarded. Never raises.

    Args:
        raw: URL string as submitted or as reported by the crawl provider

    Returns:
        Normalized key, or an empty string for empty input

    Examples:
        >>> normalize_url("https://Example.com/")
        'example.com'

        >>> normalize_url("http://www.example.com/locations/")
        'example.com/locations'

        >>> normalize_url("example.com?utm_source=gmb")
        'example.com'
    """
    if not raw or not str(raw).strip():
        return ""

    raw = str(raw)
    try:
        parsed = _parse(raw)
        host = parsed.hostname
        if not host:
            raise ValueError(f"no host in {raw!r}")
        if host.startswith("www."):
            host = host[4:]
        path = parsed.path.rstrip("/")
        return f"{host}{path}"
    except Exception as e:
        logger.debug(f"URL parse failed for {raw!r} ({e}), using string fallback")
        return _SCHEME_WWW_RE.sub("", raw.strip()).rstrip("/").lower()


def extract_domain(raw: Optional[str]) -> str:
    """
    Extract the lowercased host (without ``www.``) from a URL.

    Args:
        raw: URL string

    Returns:
        Domain, or an empty string if none can be found

    Examples:
        >>> extract_domain("https://www.Wash1.com/about")
        'wash1.com'
    """
    key = normalize_url(raw)
    return key.split("/", 1)[0] if key else ""


def is_skip_listed(raw: Optional[str]) -> bool:
    """
    Check whether a URL points at a denylisted directory/social/map domain.

    Matches the domain itself and any of its subdomains.

    Args:
        raw: URL string

    Returns:
        True if the URL should never be crawled

    Examples:
        >>> is_skip_listed("https://www.facebook.com/SparkleWash")
        True

        >>> is_skip_listed("https://maps.google.com/?cid=123")
        True

        >>> is_skip_listed("https://notfacebook.com")
        False
    """
    domain = extract_domain(raw)
    if not domain:
        return False
    return any(domain == d or domain.endswith(f".{d}") for d in SKIP_DOMAINS)


def url_variants(raw: Optional[str]) -> List[str]:
    """
    Expand a URL into the spellings a listing's website field might use.

    Used to match legacy batches that carry no URL-to-listing map.

    Args:
        raw: URL string

    Returns:
        https/http and www/no-www spellings, each with and without a trailing slash

    Examples:
        >>> "http://www.wash1.com/" in url_variants("https://wash1.com")
        True
    """
    key = normalize_url(raw)
    if not key:
        return []

    variants = []
    for scheme in ("https://", "http://"):
        for www in ("", "www."):
            base = f"{scheme}{www}{key}"
            variants.extend([base, f"{base}/"])
    return variants
