"""
===============================================================================
TARJETA CRC — application/procedures/__init__.py
===============================================================================

Responsabilidades:
  - Reunir los routers de cada módulo en un único ProcedureRegistry.

Colaboradores:
  - application.registry.ProcedureRegistry
  - container.get_registry (singleton por proceso)
===============================================================================
"""

from ..registry import ProcedureRegistry
from . import (
    auth,
    crm,
    customers,
    employees,
    finance,
    inventory,
    manufacturing,
    purchasing,
    reports,
    sales,
    setup,
)

MODULES = (
    auth,
    customers,
    sales,
    purchasing,
    inventory,
    finance,
    employees,
    manufacturing,
    crm,
    setup,
    reports,
)


def build_registry() -> ProcedureRegistry:
    registry = ProcedureRegistry()
    for module in MODULES:
        registry.include(module.router)
    return registry


__all__ = ["MODULES", "build_registry"]
