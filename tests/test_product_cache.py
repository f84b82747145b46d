"""Tests for product caching in the catalog service."""
import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import redis

from app.exceptions import ValidationError
from app.repositories.product_repository import SQLAlchemyProductRepository
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.product_service import ProductService
from app.utils.cache import CacheService


@pytest.fixture
def redis_mock():
    """Redis client double that always misses."""
    client = MagicMock()
    client.get.return_value = None
    return client


@pytest.fixture
def cached_service(db_session, redis_mock):
    """Catalog service with caching enabled over a mocked Redis client."""
    return ProductService(
        SQLAlchemyProductRepository(db_session),
        cache=CacheService(client=redis_mock, ttl=300, enabled=True),
    )


@pytest.fixture
def product(cached_service, redis_mock):
    created = cached_service.create_product(
        ProductCreate(name="Desk Lamp", price=Decimal("19.90"), category="Lighting", stock=4)
    )
    redis_mock.reset_mock()
    return created


def test_create_does_not_touch_cache(cached_service, redis_mock):
    """Test creating a product neither writes nor invalidates the cache."""
    cached_service.create_product(
        ProductCreate(name="Desk Lamp", price=Decimal("19.90"), category="Lighting", stock=4)
    )

    redis_mock.setex.assert_not_called()
    redis_mock.delete.assert_not_called()


def test_get_product_by_id_writes_cache(cached_service, redis_mock, product):
    """Test a lookup stores the product under product:<id>."""
    cached_service.get_product_by_id(product.id)

    redis_mock.setex.assert_called_once()
    key, ttl, payload = redis_mock.setex.call_args.args
    assert key == f"product:{product.id}"
    assert ttl == 300
    data = json.loads(payload)
    assert data["name"] == "Desk Lamp"
    assert data["price"] == 19.9


def test_get_product_by_id_cached_hit_skips_storage(cached_service, redis_mock, monkeypatch):
    """Test a cache hit is returned without querying the database."""
    cached = {"id": 7, "name": "Desk Lamp", "price": 19.9}
    redis_mock.get.return_value = json.dumps(cached)
    find_by_id = MagicMock()
    monkeypatch.setattr(cached_service.repository, "find_by_id", find_by_id)

    result = cached_service.get_product_by_id_cached(7)

    assert result == cached
    redis_mock.get.assert_called_once_with("product:7")
    find_by_id.assert_not_called()


def test_get_product_by_id_cached_miss_reads_storage(cached_service, redis_mock, product):
    """Test a cache miss falls back to the database and fills the cache."""
    result = cached_service.get_product_by_id_cached(product.id)

    assert result["id"] == product.id
    assert result["active"] is True
    redis_mock.setex.assert_called_once()


def test_update_product_invalidates_cache(cached_service, redis_mock, product):
    """Test a full update drops the cached entry."""
    cached_service.update_product(
        product.id,
        ProductUpdate(name="Floor Lamp", price=Decimal("49.90"), category="Lighting", stock=2),
    )

    redis_mock.delete.assert_called_once_with(f"product:{product.id}")


def test_update_stock_invalidates_cache(cached_service, redis_mock, product):
    """Test a stock change drops the cached entry."""
    cached_service.update_stock(product.id, 1)

    redis_mock.delete.assert_called_once_with(f"product:{product.id}")


def test_delete_product_invalidates_cache(cached_service, redis_mock, product):
    """Test a soft delete drops the cached entry."""
    cached_service.delete_product(product.id)

    redis_mock.delete.assert_called_once_with(f"product:{product.id}")


def test_rejected_stock_update_keeps_cache(cached_service, redis_mock, product):
    """Test a failed mutation leaves the cached entry alone."""
    with pytest.raises(ValidationError):
        cached_service.update_stock(product.id, -1)

    redis_mock.delete.assert_not_called()


def test_redis_failure_is_a_cache_miss(db_session, product):
    """Test Redis errors never reach the caller."""
    broken = MagicMock()
    broken.get.side_effect = redis.ConnectionError("redis is down")
    broken.setex.side_effect = redis.ConnectionError("redis is down")
    service = ProductService(
        SQLAlchemyProductRepository(db_session),
        cache=CacheService(client=broken, enabled=True),
    )

    result = service.get_product_by_id_cached(product.id)

    assert result["name"] == "Desk Lamp"
