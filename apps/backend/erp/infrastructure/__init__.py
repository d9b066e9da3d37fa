"""Capa de infraestructura: pool de DB y stores (Postgres / InMemory)."""
