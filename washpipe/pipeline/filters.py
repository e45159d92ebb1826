"""
Search-facet sync: maps amenity tags to filter slugs and upserts the
listing/filter join rows the directory UI searches on.
"""

from typing import Any, Dict, Iterable, List, Optional

from washpipe.core.logging import get_logger
from washpipe.db.models import ListingId

logger = get_logger(__name__)

TOUCHLESS_SLUG = "touchless"

AMENITY_TO_FILTER_SLUG = {
    "Free Vacuum": "free-vacuum",
    "Free Vacuums": "free-vacuum",
    "Vacuum": "free-vacuum",
    "vacuum": "free-vacuum",
    "Unlimited Wash Club": "unlimited-wash-club",
    "Membership": "unlimited-wash-club",
    "Monthly Plan": "unlimited-wash-club",
    "Unlimited": "unlimited-wash-club",
    "Self-Serve Bays": "self-serve-bays",
    "Self Service": "self-serve-bays",
    "Wand Wash": "self-serve-bays",
    "Self Serve": "self-serve-bays",
    "RV Wash": "rv-oversized",
    "Truck Wash": "rv-oversized",
    "Oversized Vehicle": "rv-oversized",
    "RV/Truck Wash": "rv-oversized",
}

_SLUG_BY_LOWER = {label.lower(): slug for label, slug in AMENITY_TO_FILTER_SLUG.items()}


def slugs_for(amenities: Iterable[str], is_touchless: Optional[bool]) -> List[str]:
    """
    Filter slugs implied by a listing's amenities and verdict.

    Example:
        >>> slugs_for(["VACUUM", "Towels", "Membership"], True)
        ['touchless', 'free-vacuum', 'unlimited-wash-club']
    """
    slugs: List[str] = [TOUCHLESS_SLUG] if is_touchless else []
    for amenity in amenities or []:
        slug = _SLUG_BY_LOWER.get(str(amenity).strip().lower())
        if slug and slug not in slugs:
            slugs.append(slug)
    return slugs


class FilterSync:
    """
    Upserts listing_filters rows for a listing.

    The slug -> filter id map is read once per instance.
    """

    def __init__(self, store):
        self.store = store
        self._filter_ids: Optional[Dict[str, Any]] = None

    def filter_ids(self) -> Dict[str, Any]:
        if self._filter_ids is None:
            self._filter_ids = self.store.get_filter_map()
        return self._filter_ids

    def sync(self, listing_id: ListingId, amenities: Iterable[str], is_touchless: Optional[bool]) -> int:
        """
        Returns:
            Number of join rows upserted
        """
        slugs = slugs_for(amenities, is_touchless)
        if not slugs:
            return 0

        ids = self.filter_ids()
        rows = [{"listing_id": listing_id, "filter_id": ids[slug]} for slug in slugs if slug in ids]
        missing = [slug for slug in slugs if slug not in ids]
        if missing:
            logger.debug(f"[Filters] no filter rows for slugs {missing}")

        self.store.upsert_listing_filters(rows)
        return len(rows)
