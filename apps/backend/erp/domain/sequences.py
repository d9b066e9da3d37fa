"""
===============================================================================
TARJETA CRC — domain/sequences.py
===============================================================================

Módulo:
    Esquemas de numeración de documentos (PREFIX-N)

Responsabilidades:
    - Declarar prefijo y número inicial por tipo de documento.
    - Formatear y parsear números ("CUST-1001" <-> 1001).

Colaboradores:
    - application/sequences.py: asigna max+1 con reintento por colisión.
    - infrastructure/repositories: max_sequence(prefix).

Reglas:
    - El número asignado es max(sufijo existente) + 1, o `start` si no hay.
    - Unicidad garantizada por la clave de negocio del repositorio.
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SequenceScheme:
    prefix: str
    start: int

    def format(self, number: int) -> str:
        return f"{self.prefix}-{number}"

    def parse(self, value: str) -> int | None:
        match = re.fullmatch(rf"{re.escape(self.prefix)}-(\d+)", value or "")
        return int(match.group(1)) if match else None

    def next_after(self, current_max: int | None) -> int:
        if current_max is None or current_max < self.start:
            return self.start
        return current_max + 1


CUSTOMER = SequenceScheme("CUST", 1001)
VENDOR = SequenceScheme("VEND", 1001)
EMPLOYEE = SequenceScheme("EMP", 1001)
FIXED_ASSET = SequenceScheme("FA", 1001)
PURCHASE_ORDER = SequenceScheme("PO", 1001)
ITEM = SequenceScheme("SKU", 10001)
SALES_ORDER = SequenceScheme("SO", 10001)
QUOTE = SequenceScheme("QT", 10001)
INVOICE = SequenceScheme("INV", 10001)
PAYMENT = SequenceScheme("PMT", 10001)
JOURNAL_ENTRY = SequenceScheme("JE", 10001)
RECEIPT = SequenceScheme("IR", 10001)
INVENTORY_TRANSACTION = SequenceScheme("IT", 10001)
VENDOR_BILL = SequenceScheme("BILL", 10001)
WORK_ORDER = SequenceScheme("WO", 10001)
BILL_OF_MATERIAL = SequenceScheme("BOM", 10001)
QC_INSPECTION = SequenceScheme("QCI", 10001)
SUPPORT_CASE = SequenceScheme("CAS", 10001)
SUBSCRIPTION = SequenceScheme("SUB", 10001)
