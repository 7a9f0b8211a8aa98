# kassi/api/routes.py
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import crud, schemas, search, services
from ..db import get_db
from ..models import Listing, Person
from ..utils import logger

router = APIRouter()


def get_current_user(
    x_person_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[Person]:
    # identity is established upstream; an unknown id is treated as anonymous
    if x_person_id is None:
        return None
    return db.get(Person, x_person_id)


def _visible_listing_or_404(db: Session, param: str, current_user) -> Listing:
    obj = crud.get_listing_by_param(db, param)
    if not obj or not obj.is_visible_to(current_user):
        raise HTTPException(status_code=404, detail="Listing not found")
    return obj


def _invalid(listing) -> JSONResponse:
    return JSONResponse(status_code=422, content={"errors": listing.errors.as_dict()})

@router.get("/health")
def health():
    return {"status": "ok"}

@router.get("/listings", response_model=List[schemas.ListingOut])
def listings(
    listing_type: str = Query("offer"),
    category: List[str] = Query(["all"]),
    share_type: List[str] = Query(["all"]),
    skip: int = 0,
    limit: int = 20,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    params = {"listing_type": listing_type, "category": category, "share_type": share_type}
    res = crud.list_listings(db, params, current_user, only_open=True, skip=skip, limit=limit)
    return [schemas.ListingOut.from_listing(obj) for obj in res]


@router.get("/listings/search", response_model=List[schemas.ListingOut])
def search_listings(
    q: str,
    listing_type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    res = search.search(db, q, current_user, listing_type=listing_type)
    return [schemas.ListingOut.from_listing(obj) for obj in res]


@router.get("/listings/{listing_param}", response_model=schemas.ListingOut)
def get_listing(
    listing_param: str,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    obj = _visible_listing_or_404(db, listing_param, current_user)
    return schemas.ListingOut.from_listing(obj)


@router.get("/listings/{listing_param}/matches", response_model=List[schemas.ListingOut])
def listing_matches(
    listing_param: str,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    obj = _visible_listing_or_404(db, listing_param, current_user)
    res = services.opposite_listings(db, obj, current_user)
    return [schemas.ListingOut.from_listing(match) for match in res]


@router.post(
    "/listings",
    response_model=schemas.ListingOut,
    status_code=201,
    responses={422: {"model": schemas.ListingErrors}},
)
def create_listing(
    payload: schemas.ListingCreate,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    if current_user is None:
        raise HTTPException(status_code=401, detail="Sign in to create listings")
    obj = services.submit_listing(db, current_user, payload.to_attributes())
    if obj.errors:
        return _invalid(obj)
    return schemas.ListingOut.from_listing(obj)


@router.patch(
    "/listings/{listing_id}",
    response_model=schemas.ListingOut,
    responses={422: {"model": schemas.ListingErrors}},
)
def update_listing(
    listing_id: int,
    payload: schemas.ListingUpdate,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    obj = crud.get_listing(db, listing_id)
    if not obj or not obj.is_visible_to(current_user):
        raise HTTPException(status_code=404, detail="Listing not found")
    if not crud.update_fields(db, obj, payload.to_attributes()):
        return _invalid(obj)
    return schemas.ListingOut.from_listing(obj)


@router.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[Person] = Depends(get_current_user),
):
    obj = crud.get_listing(db, listing_id)
    if not obj or not obj.is_visible_to(current_user) or not crud.delete_listing(db, listing_id):
        logger.warning("Delete requested for missing listing %s", listing_id)
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"status": "deleted"}
