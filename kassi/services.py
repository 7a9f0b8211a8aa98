# kassi/services.py
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import crud
from .models import Listing, Person
from .utils import logger


def submit_listing(db: Session, author: Optional[Person], payload: Dict[str, Any]) -> Listing:
    """Build a listing from user input and try to save it.

    The returned listing is persisted when `listing.errors` is empty; otherwise
    it carries the field errors and nothing was written.
    """
    payload = {k: v for k, v in payload.items() if v is not None}
    listing = Listing(author=author, **payload)
    if crud.save_listing(db, listing):
        logger.info("Person %s submitted %s %s", author.id, listing.listing_type, listing.to_param())
    return listing


def opposite_listings(db: Session, listing: Listing, current_user=None, limit: int = 5):
    """Open listings of the opposite type in the same category, newest first."""
    params = {
        "listing_type": Listing.opposite_type(listing.listing_type),
        "category": [listing.category],
    }
    return crud.list_listings(db, params, current_user, only_open=True, limit=limit)
