"""
===============================================================================
TARJETA CRC — application/sequences.py
===============================================================================

Responsabilidades:
  - Asignar el próximo número de documento (PREFIX-N) e insertar el registro.
  - Reintentar ante colisión de clave única (otra transacción ganó el número).

Colaboradores:
  - domain.sequences.SequenceScheme
  - domain.repositories.RecordRepository (max_sequence / add)
  - crosscutting.exceptions: DuplicateKeyError / ConflictError
  - crosscutting.metrics.record_sequence_retry

Reglas:
  - número = max(sufijo existente) + 1, o scheme.start si no hay.
  - La unicidad la garantiza el store (UNIQUE business_key); el insert en
    Postgres corre en un savepoint, así la transacción externa sigue viva.
  - Agotados los intentos => ConflictError.
===============================================================================
"""

from __future__ import annotations

from typing import Callable, TypeVar

from ..crosscutting.exceptions import ConflictError, DuplicateKeyError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_sequence_retry
from ..domain.records import Record
from ..domain.repositories import RecordRepository
from ..domain.sequences import SequenceScheme

T = TypeVar("T", bound=Record)


def allocate_and_insert(
    repository: RecordRepository[T],
    scheme: SequenceScheme,
    build: Callable[[str], T],
    *,
    max_attempts: int = 5,
) -> T:
    for attempt in range(1, max_attempts + 1):
        number = scheme.format(scheme.next_after(repository.max_sequence(scheme.prefix)))
        try:
            return repository.add(build(number))
        except DuplicateKeyError as exc:
            if exc.key != number:
                raise
            logger.warning(
                "Sequence number collision, retrying",
                extra={"prefix": scheme.prefix, "number": number, "attempt": attempt},
            )
            record_sequence_retry(scheme.prefix)

    raise ConflictError(
        f"Could not allocate a unique {scheme.prefix} number after {max_attempts} attempts"
    )


def insert_with_number(
    repository: RecordRepository[T],
    scheme: SequenceScheme,
    build: Callable[[str], T],
    *,
    explicit: str | None = None,
    max_attempts: int = 5,
) -> T:
    """Usa el número explícito si viene; si no, lo asigna. Duplicado => Conflict."""
    if not explicit:
        return allocate_and_insert(repository, scheme, build, max_attempts=max_attempts)
    try:
        return repository.add(build(explicit))
    except DuplicateKeyError as exc:
        raise ConflictError(f"{explicit} already exists") from exc
