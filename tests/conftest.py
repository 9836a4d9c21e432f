"""
Shared fixtures for the search tests.

Run tests with: python -m pytest tests/ -v
"""
import os

# Must be set before geosearch.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_FORMAT", "text")

import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert
from sqlalchemy.orm import sessionmaker

from geosearch.database import Base, get_session_factory
from geosearch.domain import Bounds, ListingRow, PointRow
from geosearch.main import app
from geosearch.models import Property
from geosearch.services.bucketing import compute_bucket_keys
from geosearch.services.cache import TTLCache
from geosearch.services.listings import create_property
from geosearch.services.rate_limit import LimitsRateLimiter


# Scenario viewport over central Mexico City
CDMX_BOUNDS = {"north": 19.5, "south": 19.3, "east": -99.0, "west": -99.2}
BASE_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =====================================================
# TEST DATABASE SETUP
# =====================================================

@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so worker threads share one database."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'geosearch_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """Test client with a fresh database, cache and a generous rate limit."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.rate_limiter = LimitsRateLimiter(rate="10000/minute")
    app.state.map_cache = TTLCache(maxsize=64, ttl=30)
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.rate_limiter = None
    app.state.map_cache = None


# =====================================================
# DATA FACTORIES
# =====================================================

@pytest.fixture
def make_property(db):
    """Create one listing; keyword overrides win over the defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "title": f"Departamento {counter['n']}",
            "lat": 19.42,
            "lng": -99.16,
            "price": 3_500_000.0,
            "listing_type": "sale",
            "property_type": "apartment",
            "bedrooms": 2,
            "bathrooms": 1,
            "area_m2": 80.0,
            "city": "Ciudad de México",
            "created_at": BASE_TIME - timedelta(minutes=counter["n"]),
        }
        data.update(overrides)
        return create_property(db=db, **data)

    return _make


def bulk_insert_properties(db, count, start=BASE_TIME, **overrides):
    """Insert ``count`` active listings spread over the scenario box, one second apart."""
    rows = []
    for i in range(count):
        lat = 19.31 + (i % 97) * 0.0019
        lng = -99.19 + (i % 89) * 0.0021
        keys = compute_bucket_keys(lat, lng)
        row = {
            "title": f"Listing {i}",
            "lat": lat,
            "lng": lng,
            "price": 1_000_000.0 + i,
            "currency": "MXN",
            "listing_type": "sale",
            "property_type": "apartment",
            "status": "active",
            "created_at": start - timedelta(seconds=i),
            **{f"bucket_p{p}": key for p, key in keys.items()},
        }
        row.update(overrides)
        rows.append(row)
    db.execute(insert(Property), rows)
    db.commit()


# =====================================================
# STUB EXECUTOR
# =====================================================

def make_listing_row(id, created_at=None, **overrides):
    data = {
        "id": id,
        "title": f"Listing {id}",
        "lat": 19.4,
        "lng": -99.1,
        "price": 1_000_000.0,
        "currency": "MXN",
        "listing_type": "sale",
        "property_type": "apartment",
        "bedrooms": None,
        "bathrooms": None,
        "area_m2": None,
        "neighborhood": None,
        "city": None,
        "state": None,
        "created_at": created_at or BASE_TIME - timedelta(minutes=id),
    }
    data.update(overrides)
    return ListingRow(**data)


def make_points(count, lat=19.40, lng=-99.10, step=0.0001, price=1_000_000.0):
    return [
        PointRow(id=i + 1, lat=lat + i * step, lng=lng + i * step, price=price)
        for i in range(count)
    ]


class StubExecutor:
    """In-memory QueryExecutor with optional latency and failure injection."""

    def __init__(
        self,
        points=None,
        rows=None,
        total=None,
        aggregates=None,
        estimate=None,
        delay=0.0,
        fail_on=None,
        error=None,
    ):
        self.points = list(points or [])
        self.rows = list(rows or [])
        self.total = len(self.rows) if total is None else total
        self.aggregates = aggregates
        self.estimate = estimate
        self.delay = delay
        self.fail_on = fail_on
        self.error = error or RuntimeError("connection reset by peer: secret-host:5432")
        self.calls = []
        self.predicates = []

    def _enter(self, name, predicate=None):
        self.calls.append(name)
        if predicate is not None:
            self.predicates.append(predicate)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_on == name:
            raise self.error

    def fetch_points(self, predicate, precision, limit):
        self._enter("fetch_points", predicate)
        return self.points[:limit]

    def fetch_page(self, predicate, limit, offset):
        self._enter("fetch_page", predicate)
        return self.rows[offset:offset + limit], self.total

    def fetch_keyset_page(self, predicate, cursor, direction, limit):
        self._enter("fetch_keyset_page", predicate)
        return self.rows[:limit + 1], self.total

    def fetch_precomputed_buckets(self, bounds, precision):
        self._enter("fetch_precomputed_buckets")
        return self.aggregates

    def estimate_total(self, status="active"):
        self._enter("estimate_total")
        return self.estimate


@pytest.fixture
def cdmx_bounds():
    return Bounds(**CDMX_BOUNDS)
