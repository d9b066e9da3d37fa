"""
Name: Sequence Allocation Tests

Responsibilities:
  - Retry on number collision (concurrent writer took the number)
  - Exhaustion raises Conflict
  - Explicit numbers bypass allocation
"""

from dataclasses import dataclass

import pytest

from erp.application.sequences import allocate_and_insert, insert_with_number
from erp.crosscutting.exceptions import ConflictError, DuplicateKeyError
from erp.domain.records import Record
from erp.domain.sequences import SequenceScheme

pytestmark = pytest.mark.unit

SCHEME = SequenceScheme("DOC", 100)


@dataclass(frozen=True, kw_only=True)
class Doc(Record):
    number: str

    def business_key(self) -> str | None:
        return self.number


class RacingRepository:
    """Simula otra transacción que inserta justo antes que nosotros."""

    def __init__(self, collisions: int, existing_max: int | None = None):
        self.collisions = collisions
        self.current_max = existing_max
        self.added: list[Doc] = []

    def max_sequence(self, prefix: str) -> int | None:
        return self.current_max

    def add(self, record: Doc) -> Doc:
        if self.collisions > 0:
            self.collisions -= 1
            self.current_max = SCHEME.parse(record.number)
            raise DuplicateKeyError("docs", record.number)
        self.added.append(record)
        return record


def test_first_number_is_scheme_start():
    repo = RacingRepository(collisions=0)
    doc = allocate_and_insert(repo, SCHEME, lambda n: Doc(number=n))
    assert doc.number == "DOC-100"


def test_collision_retries_with_next_number():
    repo = RacingRepository(collisions=2, existing_max=120)

    doc = allocate_and_insert(repo, SCHEME, lambda n: Doc(number=n), max_attempts=5)

    assert doc.number == "DOC-123"
    assert [d.number for d in repo.added] == ["DOC-123"]


def test_exhausted_attempts_is_conflict():
    repo = RacingRepository(collisions=10)

    with pytest.raises(ConflictError):
        allocate_and_insert(repo, SCHEME, lambda n: Doc(number=n), max_attempts=3)
    assert repo.added == []


def test_other_unique_violation_propagates():
    class OtherKeyRepository(RacingRepository):
        def add(self, record):
            raise DuplicateKeyError("docs", "some-other-key")

    with pytest.raises(DuplicateKeyError):
        allocate_and_insert(OtherKeyRepository(collisions=0), SCHEME, lambda n: Doc(number=n))


def test_explicit_number_is_used_verbatim():
    repo = RacingRepository(collisions=0, existing_max=500)
    doc = insert_with_number(repo, SCHEME, lambda n: Doc(number=n), explicit="DOC-7")
    assert doc.number == "DOC-7"


def test_explicit_duplicate_is_conflict():
    repo = RacingRepository(collisions=1)
    with pytest.raises(ConflictError):
        insert_with_number(repo, SCHEME, lambda n: Doc(number=n), explicit="DOC-7")


def test_scheme_parse_ignores_foreign_prefixes():
    assert SCHEME.parse("DOC-42") == 42
    assert SCHEME.parse("DOCX-42") is None
    assert SCHEME.parse("DOC-") is None
    assert SCHEME.next_after(5) == 100
