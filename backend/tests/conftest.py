"""
Shared fixtures: an in-memory Motor-compatible database with the real
indexes, a frozen clock, and small builders for merchants and deals.
"""
import os
from datetime import datetime, timedelta

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient
from starlette.requests import Request

from dealdrop.core.database import ensure_indexes
from dealdrop.models.deal import Deal
from dealdrop.models.merchant import Merchant
from dealdrop.services.deal_store import DealStore

# Whole seconds: the store keeps datetimes at millisecond precision
NOW = datetime(2024, 6, 1, 12, 0, 0)

PHOENIX = {"lat": 33.4484, "lng": -112.0740}


class FrozenClock:
    """Clock the tests can move by hand."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["dealdrop_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def store(db, clock):
    return DealStore(db, clock=clock)


async def add_merchant(db, user_id="merchant_user", location=None, is_active=True, **fields) -> dict:
    merchant = Merchant(
        user_id=user_id,
        name=fields.pop("name", "Desert Bean Coffee"),
        category=fields.pop("category", "food"),
        location=location or PHOENIX,
        address=fields.pop("address", "100 N Central Ave, Phoenix, AZ"),
        is_active=is_active,
        created_at=NOW - timedelta(days=30),
        **fields
    )
    document = merchant.model_dump(exclude={"id"})
    result = await db.merchants.insert_one(document)
    document["_id"] = result.inserted_id
    return document


async def add_deal(db, merchant: dict, **fields) -> dict:
    values = {
        "merchant_id": str(merchant["_id"]),
        "title": "Half-price cold brew",
        "original_price": 6.0,
        "discounted_price": 3.0,
        "category": "food",
        "start_time": NOW - timedelta(hours=1),
        "end_time": NOW + timedelta(hours=3),
        "max_redemptions": 50,
        "created_at": NOW - timedelta(hours=1),
    }
    values.update(fields)
    document = Deal(**values).model_dump(exclude={"id"})
    result = await db.deals.insert_one(document)
    document["_id"] = result.inserted_id
    return document


def make_request(method: str = "POST", path: str = "/api/deals") -> Request:
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [(b"user-agent", b"pytest")],
        "client": ("127.0.0.1", 50000),
        "path_params": {}
    })
