"""
============================================================
TARJETA CRC
============================================================
Class: erp.infrastructure.repositories (Package exports)

Responsibilities:
- Exponer los stores concretos (Postgres e InMemory) en un único punto
  de importación.

Collaborators:
- Repositorios Postgres (SQL crudo, psycopg 3)
- Repositorios InMemory (testing / desarrollo)
============================================================
"""

from .in_memory import InMemoryStore
from .postgres import PostgresStore

__all__ = ["InMemoryStore", "PostgresStore"]
