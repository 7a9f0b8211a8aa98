# kassi/models.py
"""SQLAlchemy ORM models for persisted entities.

`Listing` is the marketplace post (an offer or a request). Besides the column
mapping it carries the listing business rules: the normalization steps that
run before validation, the validation itself, and the share-type helpers.
Query construction lives in `kassi.crud`.
"""
import re
from types import MappingProxyType

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Table, inspect
from sqlalchemy.orm import column_property, relationship, validates, reconstructor

from .db import Base
from .errors import Errors, generate_message
from .utils import utcnow, to_naive_utc, end_of_day, one_year_from

VALID_TYPES = ("offer", "request")
VALID_CATEGORIES = ("item", "favor", "rideshare", "housing")
VALID_VISIBILITIES = ("everybody", "kassi_users")

# listing_type -> category -> legal share type names; None where share types are not allowed
VALID_SHARE_TYPES = MappingProxyType({
    "offer": MappingProxyType({
        "item": ("lend", "sell", "rent_out", "trade", "give_away"),
        "favor": None,
        "rideshare": None,
        "housing": ("rent_out", "sell", "temporary_accommodation"),
    }),
    "request": MappingProxyType({
        "item": ("borrow", "buy", "rent", "trade"),
        "favor": None,
        "rideshare": None,
        "housing": ("rent", "buy", "temporary_accommodation"),
    }),
})

CATEGORIES_WITHOUT_SHARE_TYPES = ("favor", "rideshare")


def unique_share_types(listing_type):
    """All share type names used by any category of `listing_type`, deduplicated and sorted."""
    names = set()
    for category in VALID_CATEGORIES:
        names.update(VALID_SHARE_TYPES[listing_type][category] or ())
    return sorted(names)


def opposite_type(listing_type):
    return "request" if listing_type == "offer" else "offer"


taggings = Table(
    "taggings",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("listing_id", Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("context", String(32), nullable=False, default="tags"),
)


class Person(Base):
    __tablename__ = "people"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    listings = relationship("Listing", back_populates="author")


class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False, unique=True, index=True)

    def __repr__(self):
        return f"Tag({self.name!r})"


class ShareType(Base):
    __tablename__ = "share_types"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(32), nullable=False, index=True)

    listing = relationship("Listing", back_populates="share_types")


class ListingImage(Base):
    __tablename__ = "listing_images"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    image = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    listing = relationship("Listing", back_populates="listing_images")


class Conversation(Base):
    __tablename__ = "conversations"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=True, index=True)
    title = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    listing = relationship("Listing", back_populates="conversations")


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=True, index=True)
    author_id = Column(Integer, ForeignKey("people.id"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    listing = relationship("Listing", back_populates="comments")


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    author_id = Column(Integer, ForeignKey("people.id"), nullable=False, index=True)
    listing_type = Column(String(16), nullable=False, index=True)
    category = Column(String(16), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    origin = Column(String(48))
    destination = Column(String(48))
    description = Column(Text)
    visibility = Column(String(16), nullable=False, default="everybody")
    open = Column(Boolean, nullable=False, default=True)
    valid_until = column_property(Column(DateTime), active_history=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    author = relationship("Person", back_populates="listings")
    share_types = relationship(
        "ShareType", back_populates="listing", order_by="ShareType.id", cascade="all, delete-orphan"
    )
    tags = relationship("Tag", secondary=taggings, order_by="Tag.name")
    listing_images = relationship(
        "ListingImage", back_populates="listing", order_by="ListingImage.id", cascade="all, delete-orphan"
    )
    conversations = relationship("Conversation", back_populates="listing")
    comments = relationship("Comment", back_populates="listing", order_by="Comment.id")

    unique_share_types = staticmethod(unique_share_types)
    opposite_type = staticmethod(opposite_type)

    def __init__(self, **kwargs):
        kwargs.setdefault("open", True)
        kwargs.setdefault("visibility", "everybody")
        self._errors = Errors()
        super().__init__(**kwargs)

    @reconstructor
    def _init_on_load(self):
        self._errors = Errors()

    @property
    def errors(self) -> Errors:
        return self._errors

    @validates("valid_until")
    def _coerce_valid_until(self, key, value):
        return to_naive_utc(value)

    # -- nested attributes -------------------------------------------------

    @property
    def share_type_attributes(self):
        return [share_type.name for share_type in self.share_types]

    @share_type_attributes.setter
    def share_type_attributes(self, names):
        """Replace the whole share type collection with `names`."""
        self.share_types.clear()
        for name in names or ():
            self.share_types.append(ShareType(name=name))

    @property
    def tag_list(self):
        return [tag.name for tag in self.tags]

    @tag_list.setter
    def tag_list(self, names):
        if isinstance(names, str):
            names = names.split(",")
        self.tags = [Tag(name=name.strip()) for name in names or () if name and name.strip()]

    @property
    def listing_images_attributes(self):
        return [{"image": image.image} for image in self.listing_images]

    @listing_images_attributes.setter
    def listing_images_attributes(self, attributes):
        for attrs in attributes or ():
            image = (attrs.get("image") or "").strip()
            if not image:
                continue
            self.listing_images.append(ListingImage(image=image))

    # -- normalization ------------------------------------------------------

    def is_rideshare(self) -> bool:
        return self.category == "rideshare"

    def set_rideshare_title(self):
        if self.is_rideshare():
            self.title = f"{self.origin or ''} - {self.destination or ''}"

    def set_valid_until_time(self):
        # exact time matters for rideshares; everything else lasts until the end of the day
        if self.valid_until is not None and not self.is_rideshare():
            normalized = end_of_day(self.valid_until)
            if normalized != self.valid_until:
                self.valid_until = normalized

    def downcase_tags(self):
        for tag in self.tags:
            if tag.name != tag.name.lower():
                tag.name = tag.name.lower()

    before_validation = (set_rideshare_title, set_valid_until_time)
    before_save = (downcase_tags,)

    # -- validation ---------------------------------------------------------

    def validate(self, now=None) -> bool:
        """Run the normalization pipeline, then every check. Returns True when no errors were added."""
        now = now or utcnow()
        self.errors.clear()
        for step in self.before_validation:
            step(self)

        if self.author_id is None and self.author is None:
            self.errors.add("author_id", generate_message("blank"))
        self._validate_length("title", minimum=2, maximum=100)
        if self.is_rideshare():
            self._validate_length("origin", minimum=2, maximum=48)
            self._validate_length("destination", minimum=2, maximum=48)
        self._validate_length("description", maximum=5000, allow_nil=True)
        self._validate_inclusion("listing_type", VALID_TYPES)
        self._validate_inclusion("category", VALID_CATEGORIES)
        self._validate_inclusion("visibility", VALID_VISIBILITIES)
        self.valid_until_is_within_a_year(now)
        self.given_share_type_is_one_of_valid_share_types()
        self.valid_until_is_not_nil()
        return not self.errors

    def _validate_length(self, field, minimum=None, maximum=None, allow_nil=False):
        value = getattr(self, field)
        if value is None:
            if not allow_nil:
                self.errors.add(field, generate_message("too_short", count=minimum))
            return
        if minimum is not None and len(value) < minimum:
            self.errors.add(field, generate_message("too_short", count=minimum))
        elif maximum is not None and len(value) > maximum:
            self.errors.add(field, generate_message("too_long", count=maximum))

    def _validate_inclusion(self, field, allowed):
        if getattr(self, field) not in allowed:
            self.errors.add(field, generate_message("inclusion"))

    def _valid_until_changed(self) -> bool:
        state = inspect(self)
        if not state.has_identity:
            return True
        return state.attrs.valid_until.history.has_changes()

    def valid_until_is_within_a_year(self, now):
        # checked on the normalized value, and only when it is new or being changed
        if self.valid_until is None or not self._valid_until_changed():
            return
        if not now <= self.valid_until <= one_year_from(now):
            self.errors.add("valid_until", generate_message("inclusion"))

    def given_share_type_is_one_of_valid_share_types(self):
        if self.category in CATEGORIES_WITHOUT_SHARE_TYPES:
            if self.share_types:
                self.errors.add("share_types", generate_message("must_be_nil"))
        elif not self.share_types:
            self.errors.add("share_types", generate_message("blank"))
        elif self.listing_type in VALID_TYPES and self.category in VALID_CATEGORIES:
            legal = VALID_SHARE_TYPES[self.listing_type][self.category]
            for share_type in self.share_types:
                if share_type.name not in legal:
                    self.errors.add("share_types", generate_message("inclusion"))

    def valid_until_is_not_nil(self):
        if (self.is_rideshare() or self.listing_type == "request") and self.valid_until is None:
            self.errors.add("valid_until", generate_message("empty"))

    # -- predicates ---------------------------------------------------------

    def is_visible_to(self, current_user) -> bool:
        return self.visibility == "everybody" or (current_user is not None and self.visibility == "kassi_users")

    def is_closed(self, now=None) -> bool:
        now = now or utcnow()
        return not self.open or (self.valid_until is not None and self.valid_until < now)

    def is_temporary(self) -> bool:
        """True for persisted listings that expire."""
        return inspect(self).has_identity and self.valid_until is not None

    def has_share_type(self, name) -> bool:
        return any(share_type.name == name for share_type in self.share_types)

    def is_default_share_type(self, name) -> bool:
        legal = VALID_SHARE_TYPES.get(self.listing_type, {}).get(self.category)
        return bool(legal) and name == legal[0]

    def to_param(self) -> str:
        slug = re.sub(r"\W", "_", self.title or "", flags=re.ASCII).lower()
        return f"{self.id}-{slug}"

    def __repr__(self):
        return f"Listing(id={self.id!r}, listing_type={self.listing_type!r}, title={self.title!r})"
