# kassi/crud.py
"""Query builders and persistence helpers for `Listing` entities.

The builders (`visible_to`, `open_listings`, `offers`, `requests`,
`find_with`) return SQLAlchemy `Select` statements with bound parameters, so
callers can narrow them further before executing. The persistence helpers
run the listing's validation pipeline and only write valid records.
"""
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select, or_, inspect
from sqlalchemy.orm import Session, selectinload

from .models import Listing, ShareType, Tag
from .utils import logger, utcnow

UPDATABLE_FIELDS = frozenset({
    "listing_type",
    "category",
    "title",
    "origin",
    "destination",
    "description",
    "visibility",
    "open",
    "valid_until",
    "share_type_attributes",
    "tag_list",
    "listing_images_attributes",
})


def visible_to(stmt, current_user=None):
    """Anonymous visitors see public listings; signed-in users also see members-only ones."""
    if current_user is not None:
        return stmt.where(Listing.visibility.in_(("everybody", "kassi_users")))
    return stmt.where(Listing.visibility == "everybody")


def open_listings(stmt=None, now=None):
    stmt = select(Listing) if stmt is None else stmt
    now = now or utcnow()
    return stmt.where(
        Listing.open.is_(True),
        or_(Listing.valid_until.is_(None), Listing.valid_until > now),
    )


def _of_type(listing_type: str):
    return (
        select(Listing)
        .where(Listing.listing_type == listing_type)
        .options(selectinload(Listing.listing_images))
        .order_by(Listing.created_at.desc())
    )


def offers():
    return _of_type("offer")


def requests():
    return _of_type("request")


def _filter_values(values) -> Optional[List[str]]:
    # a leading "all" disables the filter
    if not values:
        return None
    if isinstance(values, str):
        values = [values]
    values = list(values)
    if values[0] == "all":
        return None
    return values


def find_with(params: Mapping[str, Any], current_user=None):
    stmt = select(Listing).where(Listing.listing_type == params.get("listing_type"))
    categories = _filter_values(params.get("category"))
    if categories:
        stmt = stmt.where(Listing.category.in_(categories))
    share_types = _filter_values(params.get("share_type"))
    if share_types:
        stmt = stmt.where(
            Listing.id.in_(select(ShareType.listing_id).where(ShareType.name.in_(share_types)))
        )
    return visible_to(stmt, current_user).order_by(Listing.id.desc())


def list_listings(db: Session, params: Mapping[str, Any], current_user=None,
                  only_open: bool = False, skip: int = 0, limit: Optional[int] = None) -> List[Listing]:
    stmt = find_with(params, current_user)
    if only_open:
        stmt = open_listings(stmt)
    if skip:
        stmt = stmt.offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars())


def get_listing(db: Session, listing_id: int) -> Optional[Listing]:
    return db.get(Listing, listing_id)


def get_listing_by_param(db: Session, param: str) -> Optional[Listing]:
    """Look a listing up by its URL slug ("<id>-<title>") or a bare id."""
    head = str(param).split("-", 1)[0]
    if not head.isdigit():
        return None
    return get_listing(db, int(head))


def _attach_existing_tags(db: Session, listing: Listing) -> None:
    resolved: Dict[str, Tag] = {}
    with db.no_autoflush:
        for tag in listing.tags:
            if tag.name in resolved:
                if tag in db:
                    db.expunge(tag)
                continue
            if not inspect(tag).has_identity:
                existing = db.execute(select(Tag).where(Tag.name == tag.name)).scalar_one_or_none()
                if existing is not None:
                    if tag in db:
                        db.expunge(tag)
                    tag = existing
            resolved[tag.name] = tag
    listing.tags = list(resolved.values())


def save_listing(db: Session, listing: Listing) -> bool:
    """Validate and persist `listing`.

    Returns False, leaving the field errors on `listing.errors`, when the
    listing is invalid; nothing is written in that case.
    """
    if not listing.validate():
        logger.debug("Listing %s rejected: %s", listing.id, listing.errors.as_dict())
        state = inspect(listing)
        if state.persistent:
            db.rollback()
        elif state.pending:
            db.expunge(listing)
        return False
    for step in listing.before_save:
        step(listing)
    _attach_existing_tags(db, listing)
    created = not inspect(listing).has_identity
    db.add(listing)
    db.commit()
    db.refresh(listing)
    logger.info("%s listing %s", "Created" if created else "Updated", listing.to_param())
    return True


def update_fields(db: Session, listing: Listing, params: Mapping[str, Any]) -> bool:
    """Apply `params` to a persisted listing.

    `valid_until` is cleared (and stored straight away, without validation)
    when `params` does not provide one; the remaining fields then go through
    the normal validated save.
    """
    params = dict(params)
    unknown = set(params) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown listing attributes: {', '.join(sorted(unknown))}")
    if not params.get("valid_until"):
        params.pop("valid_until", None)
        listing.valid_until = None
        db.commit()
    for key, value in params.items():
        setattr(listing, key, value)
    return save_listing(db, listing)


def delete_listing(db: Session, listing_id: int) -> bool:
    obj = get_listing(db, listing_id)
    if not obj:
        return False
    db.delete(obj)
    db.commit()
    logger.info("Deleted listing %s", listing_id)
    return True
