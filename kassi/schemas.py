# kassi/schemas.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime

# payload key -> Listing attribute
_NESTED = {
    "share_types": "share_type_attributes",
    "tags": "tag_list",
    "images": "listing_images_attributes",
}


def _to_attributes(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_NESTED.get(k, k): v for k, v in data.items()}


class ListingImageIn(BaseModel):
    image: Optional[str] = None

class ListingBase(BaseModel):
    title: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[str] = None
    open: Optional[bool] = None
    valid_until: Optional[datetime] = None

class ListingCreate(ListingBase):
    listing_type: str
    category: str
    share_types: List[str] = []
    tags: List[str] = []
    images: List[ListingImageIn] = []

    def to_attributes(self) -> Dict[str, Any]:
        return _to_attributes(self.model_dump())

class ListingUpdate(ListingBase):
    listing_type: Optional[str] = None
    category: Optional[str] = None
    share_types: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    images: Optional[List[ListingImageIn]] = None

    def to_attributes(self) -> Dict[str, Any]:
        # fields the client did not send are left alone (valid_until excepted, see crud.update_fields)
        return _to_attributes(self.model_dump(exclude_unset=True))

class ListingOut(BaseModel):
    id: int
    slug: str
    author_id: int
    listing_type: str
    category: str
    title: str
    origin: Optional[str]
    destination: Optional[str]
    description: Optional[str]
    visibility: str
    open: bool
    closed: bool
    valid_until: Optional[datetime]
    share_types: List[str]
    tags: List[str]
    images: List[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_listing(cls, listing) -> "ListingOut":
        return cls(
            id=listing.id,
            slug=listing.to_param(),
            author_id=listing.author_id,
            listing_type=listing.listing_type,
            category=listing.category,
            title=listing.title,
            origin=listing.origin,
            destination=listing.destination,
            description=listing.description,
            visibility=listing.visibility,
            open=listing.open,
            closed=listing.is_closed(),
            valid_until=listing.valid_until,
            share_types=listing.share_type_attributes,
            tags=listing.tag_list,
            images=[image.image for image in listing.listing_images],
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )

class ListingErrors(BaseModel):
    errors: Dict[str, List[str]]
