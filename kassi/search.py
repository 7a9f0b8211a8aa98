# kassi/search.py
"""Search index schema for listings and a small weighted search over it.

`index_document` exports a listing the way the full-text index expects it:
text fields (title, description, tags, comments) plus boolean and timestamp
attributes. `search` ranks open listings in-process with the same field
weights, which is what the API uses when no external index is configured.
"""
import re
from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from .crud import open_listings, visible_to
from .models import Listing
from .utils import logger, utcnow

INDEXED_FIELDS = ("title", "description", "tags", "comments")
ATTRIBUTES = (
    "created_at",
    "updated_at",
    "is_offer",
    "is_request",
    "visible_to_kassi_users",
    "visible_to_everybody",
    "open",
)
FIELD_WEIGHTS = MappingProxyType({
    "title": 10,
    "tags": 8,
    "description": 3,
    "comments": 1,
})
# prefix/suffix wildcards ("ladd*") are allowed in queries
ENABLE_STAR = True

_TOKEN_RE = re.compile(r"[\w*]+")


def tokenize(text: Optional[str]) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def index_document(listing: Listing, now=None) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "id": listing.id,
        "fields": {
            "title": listing.title or "",
            "description": listing.description or "",
            "tags": " ".join(listing.tag_list),
            "comments": " ".join(comment.content for comment in listing.comments),
        },
        "attributes": {
            "created_at": listing.created_at,
            "updated_at": listing.updated_at,
            "is_offer": listing.listing_type == "offer",
            "is_request": listing.listing_type == "request",
            "visible_to_kassi_users": listing.visibility in ("everybody", "kassi_users"),
            "visible_to_everybody": listing.visibility == "everybody",
            "open": not listing.is_closed(now),
        },
    }


def _term_matches(term: str, token: str) -> bool:
    if ENABLE_STAR and "*" in term:
        return fnmatchcase(token, term)
    return token == term


def score(document: Dict[str, Any], terms: List[str]) -> int:
    """Sum of field weights over every (term, matching token) pair."""
    total = 0
    for field, weight in FIELD_WEIGHTS.items():
        tokens = tokenize(document["fields"][field])
        for term in terms:
            total += weight * sum(1 for token in tokens if _term_matches(term, token))
    return total


def search(db: Session, query: str, current_user=None, listing_type: Optional[str] = None,
           limit: int = 20) -> List[Listing]:
    terms = tokenize(query)
    if not terms:
        return []
    now = utcnow()
    stmt = visible_to(open_listings(now=now), current_user)
    if listing_type:
        stmt = stmt.where(Listing.listing_type == listing_type)
    stmt = stmt.options(selectinload(Listing.tags), selectinload(Listing.comments))
    ranked = []
    for listing in db.execute(stmt).scalars():
        points = score(index_document(listing, now), terms)
        if points:
            ranked.append((points, listing.id, listing))
    ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
    logger.debug("Search %r matched %d listings", query, len(ranked))
    return [listing for _, _, listing in ranked[:limit]]
