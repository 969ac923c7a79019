import os

# Must be set before database.py creates the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import datetime
import itertools

import pytest
from fastapi.testclient import TestClient

import auth
import models
from database import Base, SessionLocal, engine
from main import app

IMAGE_URL = "https://images.example.com/tree.jpg"


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def now():
    return datetime.datetime(2026, 10, 15, 12, 0, 0)


@pytest.fixture
def user_factory(db):
    counter = itertools.count(1)

    def make(name=None, role="planter", is_active=True, password="Secret123"):
        n = next(counter)
        user = models.User(
            name=name or f"Planter {n}",
            email=f"planter{n}@example.com",
            hashed_password=auth.get_password_hash(password),
            role=role,
            is_active=is_active,
            trees_planted=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return make


@pytest.fixture
def planting_factory(db):
    def make(owner, **fields):
        values = dict(
            tree_type="Oak",
            species="Quercus robur",
            address="1 Park Lane, London",
            latitude=51.5,
            longitude=-0.12,
            city="London",
            state="England",
            country="United Kingdom",
            planting_date=models.utcnow() - datetime.timedelta(days=2),
            health_status="good",
            is_active=True,
            is_verified=False,
            planted_by=owner.id,
        )
        values.update(fields)
        planting = models.Planting(**values)
        planting.images.append(models.PlantingImage(url=IMAGE_URL))
        db.add(planting)
        db.commit()
        db.refresh(planting)
        return planting

    return make


@pytest.fixture
def headers():
    def make(user):
        return {"Authorization": f"Bearer {auth.token_for(user)}"}

    return make


@pytest.fixture
def tree():
    """Transient planting for engine tests; never touches the database."""
    ids = itertools.count(1)

    def make(**fields):
        values = dict(
            id=next(ids),
            tree_type="Oak",
            latitude=10.0,
            longitude=20.0,
            city="Lagos",
            state="Lagos",
            country="Nigeria",
            planted_by=1,
            planting_date=datetime.datetime(2026, 9, 1),
            created_at=datetime.datetime(2026, 9, 1),
            is_active=True,
            is_verified=True,
        )
        values.update(fields)
        return models.Planting(**values)

    return make


@pytest.fixture
def person():
    def make(user_id, name=None, is_active=True, trees_planted=0):
        return models.User(
            id=user_id,
            name=name or f"User {user_id}",
            is_active=is_active,
            trees_planted=trees_planted,
        )

    return make
