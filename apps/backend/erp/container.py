"""
===============================================================================
TARJETA CRC — erp/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer el store (in-memory en test; Postgres en runtime).
  - Componer el registry de procedimientos.
  - Exponer factories para FastAPI (Depends); singletons con lru_cache.

Colaboradores:
  - crosscutting.config.get_settings
  - infrastructure.repositories (InMemoryStore / PostgresStore)
  - application.procedures.build_registry

Notas:
  - Este archivo NO contiene lógica de negocio.
  - Este archivo NO depende de FastAPI.
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .application.procedures import build_registry
from .application.registry import ProcedureRegistry
from .crosscutting.config import get_settings
from .domain.repositories import Store
from .infrastructure.repositories import InMemoryStore, PostgresStore


@lru_cache(maxsize=1)
def get_store() -> Store:
    """Store transaccional (in-memory en test; Postgres en runtime)."""
    if get_settings().is_test():
        return InMemoryStore()
    return PostgresStore()


@lru_cache(maxsize=1)
def get_registry() -> ProcedureRegistry:
    return build_registry()


def reset_container() -> None:
    """Descarta los singletons (tests)."""
    get_store.cache_clear()
    get_registry.cache_clear()
