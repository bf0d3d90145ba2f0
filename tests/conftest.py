"""Shared test fixtures — fake data source, manual clock, mocked Supabase client."""

import os
from unittest.mock import MagicMock

import pytest

# Set required env vars before any storefront imports
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")

from tests.fakes import FakeDataSource, ManualClock, make_orders, make_products  # noqa: E402


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def source():
    return FakeDataSource({
        "products": make_products(3),
        "categories": [{"id": "c1", "name": "Art"}, {"id": "c2", "name": "Toys"}],
        "orders": make_orders("u1", 25) + make_orders("u2", 4),
    })


@pytest.fixture
def mock_supabase():
    """Mock the Supabase client with chainable query builder."""
    mock = MagicMock()

    # Make table().select().eq()... chains return empty data by default
    query = MagicMock()
    query.execute.return_value = MagicMock(data=[])
    query.eq.return_value = query
    query.order.return_value = query
    query.range.return_value = query
    query.limit.return_value = query
    query.select.return_value = query
    query.update.return_value = query
    query.insert.return_value = query
    query.delete.return_value = query

    mock.table.return_value = query
    return mock
