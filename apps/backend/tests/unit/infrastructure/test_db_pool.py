"""
Name: Database Pool Tests

Responsibilities:
  - Test pool lifecycle (init, get, close)
  - Test PostgresStore pool resolution
  - Offline unit tests (no real DB)

Notes:
  - Uses mocking for ConnectionPool
"""

from unittest.mock import MagicMock, patch

import pytest

from erp.infrastructure.db.errors import (
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
)
from erp.infrastructure.db.pool import close_pool, get_pool, init_pool
from erp.infrastructure.repositories import PostgresStore


@pytest.fixture(autouse=True)
def clean_pool():
    close_pool()
    yield
    close_pool()


@pytest.mark.unit
class TestPoolLifecycle:
    """Test pool initialization and cleanup."""

    def test_init_pool_creates_pool(self):
        with patch("erp.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            result = init_pool("postgresql://test", min_size=2, max_size=10)

            MockPool.assert_called_once()
            assert MockPool.call_args.kwargs["min_size"] == 2
            assert result == mock_pool

    def test_init_pool_twice_raises_error(self):
        with patch("erp.infrastructure.db.pool.ConnectionPool"):
            init_pool("postgresql://test", min_size=2, max_size=10)

            with pytest.raises(PoolAlreadyInitializedError):
                init_pool("postgresql://test", min_size=2, max_size=10)

    def test_get_pool_without_init_raises_error(self):
        with pytest.raises(PoolNotInitializedError, match="not initialized"):
            get_pool()

    def test_close_pool_clears_singleton(self):
        with patch("erp.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            init_pool("postgresql://test", min_size=2, max_size=10)
            close_pool()

            mock_pool.close.assert_called_once()
            with pytest.raises(PoolNotInitializedError):
                get_pool()

    def test_close_pool_is_idempotent(self):
        close_pool()
        close_pool()


@pytest.mark.unit
class TestStorePoolUsage:
    """PostgresStore usa el pool inyectado o el global."""

    def test_store_uses_injected_pool(self):
        mock_pool = MagicMock()
        assert PostgresStore(pool=mock_pool)._get_pool() is mock_pool

    def test_store_falls_back_to_global_pool(self):
        with patch("erp.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool
            init_pool("postgresql://test", min_size=1, max_size=2)

            assert PostgresStore()._get_pool() is mock_pool
