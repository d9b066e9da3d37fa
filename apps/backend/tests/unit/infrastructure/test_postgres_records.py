"""
Name: Postgres Record Repository Tests

Responsibilities:
  - JSONB round-trip through the pydantic TypeAdapter
  - UniqueViolation -> DuplicateKeyError (business key)
  - Driver errors -> DatabaseError
  - Migration declares one table per record kind

Notes:
  - Offline: psycopg Connection is a MagicMock
"""

import importlib.util
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from psycopg import errors

from erp.crosscutting.exceptions import DatabaseError, DuplicateKeyError
from erp.domain.parties import Customer
from erp.domain.repositories import RECORD_KINDS
from erp.infrastructure.repositories.postgres.records import PostgresRecordRepository

pytestmark = pytest.mark.unit

MIGRATION = (
    Path(__file__).resolve().parents[3] / "alembic" / "versions" / "001_erp_foundation.py"
)


def _conn() -> MagicMock:
    conn = MagicMock()
    # El savepoint no debe tragarse excepciones.
    conn.transaction.return_value.__exit__.return_value = False
    return conn


def _customer() -> Customer:
    return Customer(
        customer_number="CUST-1001",
        company_name="Acme",
        display_name="Acme",
        credit_limit=Decimal("1500.50"),
    )


def test_add_then_get_roundtrips_json():
    conn = _conn()
    repo = PostgresRecordRepository(conn, "customers", Customer)
    customer = _customer()

    repo.add(customer)
    insert_params = conn.execute.call_args.args[1]
    stored = insert_params[2].obj

    assert insert_params[1] == "CUST-1001"
    assert stored["credit_limit"] == "1500.50"

    conn.execute.return_value.fetchone.return_value = (stored,)
    loaded = repo.get(customer.id)

    assert loaded == customer


def test_unique_violation_becomes_duplicate_key():
    conn = _conn()
    conn.execute.side_effect = errors.UniqueViolation("duplicate key")
    repo = PostgresRecordRepository(conn, "customers", Customer)

    with pytest.raises(DuplicateKeyError) as exc_info:
        repo.add(_customer())

    assert exc_info.value.kind == "customers"
    assert exc_info.value.key == "CUST-1001"


def test_driver_error_becomes_database_error():
    conn = _conn()
    conn.execute.side_effect = RuntimeError("connection reset")
    repo = PostgresRecordRepository(conn, "customers", Customer)

    with pytest.raises(DatabaseError):
        repo.count()


def test_max_sequence_parses_row():
    conn = _conn()
    conn.execute.return_value.fetchone.return_value = (1041,)
    repo = PostgresRecordRepository(conn, "customers", Customer)

    assert repo.max_sequence("CUST") == 1041
    assert conn.execute.call_args.args[1] == ("^CUST-([0-9]+)$", "^CUST-([0-9]+)$")


def test_empty_table_has_no_sequence():
    conn = _conn()
    conn.execute.return_value.fetchone.return_value = (None,)
    repo = PostgresRecordRepository(conn, "customers", Customer)

    assert repo.max_sequence("CUST") is None


def test_migration_covers_every_record_kind():
    spec = importlib.util.spec_from_file_location("erp_foundation_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    assert set(module.RECORD_TABLES) == set(RECORD_KINDS)
