# tests/test_models.py
from datetime import datetime, timedelta, timezone

import pytest

from kassi.errors import Errors
from kassi.models import (
    Listing,
    VALID_SHARE_TYPES,
    opposite_type,
    unique_share_types,
)
from kassi.utils import one_year_from, utcnow


def build(**overrides):
    attrs = {
        "author_id": 1,
        "listing_type": "offer",
        "category": "item",
        "title": "Hammer",
        "share_type_attributes": ["lend"],
    }
    attrs.update(overrides)
    return Listing(**attrs)


def in_days(days, hour=10, minute=15, second=30):
    day = utcnow() + timedelta(days=days)
    return day.replace(hour=hour, minute=minute, second=second, microsecond=0)


def test_valid_item_offer():
    listing = build()
    assert listing.validate()
    assert not listing.errors


@pytest.mark.parametrize("category", ["favor", "rideshare"])
def test_share_types_must_be_empty_for_favors_and_rideshares(category):
    listing = build(
        category=category,
        origin="Otaniemi",
        destination="Kamppi",
        valid_until=in_days(2),
    )
    assert not listing.validate()
    assert listing.errors["share_types"] == ["must be empty"]


@pytest.mark.parametrize("category", ["favor", "rideshare"])
def test_favors_and_rideshares_without_share_types_are_valid(category):
    listing = build(
        category=category,
        share_type_attributes=[],
        origin="Otaniemi",
        destination="Kamppi",
        valid_until=in_days(2),
    )
    assert listing.validate(), listing.errors


@pytest.mark.parametrize("category", ["item", "housing"])
def test_share_types_required_for_items_and_housing(category):
    listing = build(category=category, share_type_attributes=[])
    assert not listing.validate()
    assert listing.errors["share_types"] == ["can't be blank"]


def test_share_type_must_match_listing_type_and_category():
    listing = build(listing_type="request", share_type_attributes=["sell"], valid_until=in_days(2))
    assert not listing.validate()
    assert "share_types" in listing.errors

    listing = build(listing_type="request", share_type_attributes=["borrow", "buy"], valid_until=in_days(2))
    assert listing.validate(), listing.errors


def test_each_illegal_share_type_is_reported():
    listing = build(category="housing", share_type_attributes=["lend", "give_away", "sell"])
    assert not listing.validate()
    assert len(listing.errors["share_types"]) == 2


def test_rideshare_title_is_derived_from_route():
    departure = in_days(1, hour=7, minute=45, second=0)
    listing = build(
        category="rideshare",
        title=None,
        share_type_attributes=[],
        origin="Otaniemi",
        destination="Kamppi",
        valid_until=departure,
    )
    assert listing.validate(), listing.errors
    assert listing.title == "Otaniemi - Kamppi"
    assert listing.valid_until == departure


def test_rideshare_origin_and_destination_lengths():
    listing = build(
        category="rideshare",
        share_type_attributes=[],
        origin="A",
        destination="B" * 49,
        valid_until=in_days(1),
    )
    assert not listing.validate()
    assert listing.errors["origin"] == ["is too short (minimum is 2 characters)"]
    assert listing.errors["destination"] == ["is too long (maximum is 48 characters)"]


def test_valid_until_moves_to_end_of_day():
    now = datetime(2026, 3, 10, 12, 0, 0)
    listing = build(valid_until=datetime(2026, 3, 13, 10, 15, 30))
    assert listing.validate(now=now), listing.errors
    expected = datetime(2026, 3, 13, 23, 59, 59)
    assert listing.valid_until == expected


def test_aware_valid_until_is_stored_as_utc():
    day = (utcnow() + timedelta(days=5)).date()
    local = datetime(day.year, day.month, day.day, 1, 30, tzinfo=timezone(timedelta(hours=3)))
    listing = build(valid_until=local)
    assert listing.valid_until.tzinfo is None
    assert listing.validate(), listing.errors
    previous_day = datetime(day.year, day.month, day.day) - timedelta(days=1)
    assert listing.valid_until == previous_day.replace(hour=23, minute=59, second=59)


def test_valid_until_may_be_today():
    now = datetime(2026, 3, 10, 23, 59, 30)
    listing = build(valid_until=datetime(2026, 3, 10, 0, 0, 1))
    assert listing.validate(now=now), listing.errors
    assert listing.valid_until == datetime(2026, 3, 10, 23, 59, 59)


def test_one_year_from_clamps_leap_day():
    assert one_year_from(datetime(2028, 2, 29, 12)) == datetime(2029, 2, 28, 12)
    assert one_year_from(datetime(2026, 3, 10, 8, 30)) == datetime(2027, 3, 10, 8, 30)


def rideshare(valid_until):
    return build(category="rideshare", share_type_attributes=[], origin="Espoo",
                 destination="Turku", valid_until=valid_until)


def test_rideshare_valid_until_may_be_exactly_a_year_ahead():
    now = datetime(2028, 2, 29, 12, 0, 0)
    listing = rideshare(one_year_from(now))
    assert listing.validate(now=now), listing.errors
    assert listing.valid_until == datetime(2029, 2, 28, 12, 0, 0)


def test_rideshare_valid_until_past_a_year_rejected():
    now = datetime(2028, 2, 29, 12, 0, 0)
    listing = rideshare(one_year_from(now) + timedelta(seconds=1))
    assert not listing.validate(now=now)
    assert listing.errors["valid_until"] == ["is not included in the list"]


@pytest.mark.parametrize("days", [-2, 400])
def test_valid_until_outside_window_rejected(days):
    listing = build(valid_until=in_days(days))
    assert not listing.validate()
    assert listing.errors["valid_until"] == ["is not included in the list"]


@pytest.mark.parametrize("overrides", [
    {"listing_type": "request", "share_type_attributes": ["borrow"]},
    {"category": "rideshare", "share_type_attributes": [], "origin": "Espoo", "destination": "Turku"},
])
def test_valid_until_required_for_requests_and_rideshares(overrides):
    listing = build(**overrides)
    assert not listing.validate()
    assert listing.errors["valid_until"] == ["cannot be empty"]


def test_offers_do_not_need_valid_until():
    assert build(valid_until=None).validate()


@pytest.mark.parametrize("title,message", [
    (None, "is too short (minimum is 2 characters)"),
    ("A", "is too short (minimum is 2 characters)"),
    ("x" * 101, "is too long (maximum is 100 characters)"),
])
def test_title_length(title, message):
    listing = build(title=title)
    assert not listing.validate()
    assert listing.errors["title"] == [message]


def test_description_length():
    assert build(description=None).validate()
    listing = build(description="x" * 5001)
    assert not listing.validate()
    assert "description" in listing.errors


@pytest.mark.parametrize("field,value", [
    ("listing_type", "swap"),
    ("category", "pets"),
    ("visibility", "friends"),
])
def test_enumerated_fields(field, value):
    listing = build(**{field: value})
    assert not listing.validate()
    assert listing.errors[field] == ["is not included in the list"]


def test_author_required():
    listing = build(author_id=None)
    assert not listing.validate()
    assert listing.errors["author_id"] == ["can't be blank"]


def test_defaults():
    listing = build()
    assert listing.open is True
    assert listing.visibility == "everybody"


def test_opposite_type():
    assert opposite_type("offer") == "request"
    assert opposite_type("request") == "offer"
    assert Listing.opposite_type("offer") == "request"


def test_unique_share_types():
    assert unique_share_types("offer") == [
        "give_away", "lend", "rent_out", "sell", "temporary_accommodation", "trade",
    ]
    assert Listing.unique_share_types("request") == [
        "borrow", "buy", "rent", "temporary_accommodation", "trade",
    ]


def test_share_type_table_is_read_only():
    with pytest.raises(TypeError):
        VALID_SHARE_TYPES["offer"] = {}
    with pytest.raises(TypeError):
        VALID_SHARE_TYPES["offer"]["item"] = ("steal",)


def test_to_param():
    listing = build(id=5, title="Lend Me A Ladder!")
    assert listing.to_param() == "5-lend_me_a_ladder_"


def test_default_share_type():
    listing = build()
    assert listing.is_default_share_type("lend")
    assert not listing.is_default_share_type("sell")
    assert build(listing_type="request").is_default_share_type("borrow")
    assert not build(category="favor").is_default_share_type("lend")


def test_share_type_attributes_replace_collection():
    listing = build(share_type_attributes=["lend", "sell"])
    assert listing.has_share_type("sell")
    listing.share_type_attributes = ["trade"]
    assert listing.share_type_attributes == ["trade"]
    assert not listing.has_share_type("sell")
    listing.share_type_attributes = None
    assert listing.share_types == []


def test_visibility_predicate():
    public = build(visibility="everybody")
    members = build(visibility="kassi_users")
    user = object()
    assert public.is_visible_to(None)
    assert public.is_visible_to(user)
    assert not members.is_visible_to(None)
    assert members.is_visible_to(user)


def test_closed():
    now = utcnow()
    assert build(open=False).is_closed(now)
    assert build(valid_until=now - timedelta(minutes=1)).is_closed(now)
    assert not build(valid_until=now + timedelta(days=1)).is_closed(now)
    assert not build().is_closed(now)


def test_unsaved_listing_is_not_temporary():
    assert not build(valid_until=in_days(2)).is_temporary()


def test_tag_list_accepts_comma_separated_string():
    listing = build(tag_list="Tools, garden ,, DIY")
    assert [tag.name for tag in listing.tags] == ["Tools", "garden", "DIY"]
    listing.downcase_tags()
    assert [tag.name for tag in listing.tags] == ["tools", "garden", "diy"]


def test_blank_images_are_skipped():
    listing = build(listing_images_attributes=[{"image": "a.jpg"}, {"image": ""}, {"image": None}, {}])
    assert listing.listing_images_attributes == [{"image": "a.jpg"}]


def test_errors_collection():
    errors = Errors()
    assert not errors
    errors.add("title", "is too short")
    errors.add("title", "is invalid")
    errors.add("share_types", "must be empty")
    assert len(errors) == 3
    assert errors["missing"] == []
    assert errors.full_messages() == [
        "title is too short",
        "title is invalid",
        "share_types must be empty",
    ]
    errors.clear()
    assert errors.as_dict() == {}
