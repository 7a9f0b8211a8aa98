# tests/conftest.py
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kassi import crud
from kassi.db import Base
from kassi.models import Listing, Person


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def person(db):
    obj = Person(username="anna")
    db.add(obj)
    db.commit()
    return obj


@pytest.fixture
def make_listing(db, person):
    def _make(**overrides):
        attrs = {
            "listing_type": "offer",
            "category": "item",
            "title": "Hammer",
            "description": "A sturdy claw hammer",
            "share_type_attributes": ["lend"],
        }
        attrs.update(overrides)
        listing = Listing(author=person, **attrs)
        assert crud.save_listing(db, listing), listing.errors.as_dict()
        return listing
    return _make
