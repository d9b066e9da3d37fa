"""
Name: Module Import Tests

Responsibilities:
  - Every module under erp/ imports cleanly (relative import depth included)
  - Repository package exposes both store backends
"""

import importlib
from pathlib import Path

import pytest

import erp.container

pytestmark = pytest.mark.unit

_PACKAGE_ROOT = Path(erp.container.__file__).resolve().parent


def _module_names() -> list[str]:
    names = []
    for path in sorted(_PACKAGE_ROOT.rglob("*.py")):
        parts = path.relative_to(_PACKAGE_ROOT.parent).with_suffix("").parts
        if parts[-1] == "__init__":
            parts = parts[:-1]
        names.append(".".join(parts))
    return names


@pytest.mark.parametrize("module_name", _module_names())
def test_module_imports(module_name):
    importlib.import_module(module_name)


def test_repository_backends_are_exported():
    repositories = importlib.import_module("erp.infrastructure.repositories")

    assert repositories.InMemoryStore.__module__.endswith("in_memory.store")
    assert repositories.PostgresStore.__module__.endswith("postgres.store")
