"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure test environment (APP_ENV=test, no .env file)
  - Provide an in-memory store, the procedure registry and principals
  - Provide a `call` helper that runs procedures through the full pipeline
  - Provide a TestClient bound to the same store

Collaborators:
  - pytest: Test framework
  - erp.infrastructure.repositories.InMemoryStore
  - erp.application.procedures.build_registry

Notes:
  - Use @pytest.fixture(scope="function") for per-test isolation
"""

import os
import sys
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

from erp.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None
app_config.get_settings.cache_clear()

from erp.application.procedures import build_registry  # noqa: E402
from erp.application.registry import ProcedureContext, ProcedureRegistry  # noqa: E402
from erp.domain.permissions import Permission  # noqa: E402
from erp.domain.setup import Role, RolePermissionGrant, User  # noqa: E402
from erp.identity.auth_users import hash_password  # noqa: E402
from erp.identity.principal import Principal  # noqa: E402
from erp.infrastructure.repositories import InMemoryStore  # noqa: E402


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


# ============================================================================
# Store / Registry
# ============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    """Fresh in-memory store per test."""
    return InMemoryStore()


@pytest.fixture(scope="session")
def registry() -> ProcedureRegistry:
    return build_registry()


# ============================================================================
# Principals
# ============================================================================


def make_principal(*permissions: Permission, name: str = "Tester") -> Principal:
    return Principal(
        user_id=uuid4(),
        name=name,
        email=f"{name.lower()}@example.com",
        permissions=frozenset(permissions),
    )


@pytest.fixture
def admin() -> Principal:
    """Principal con todos los permisos del catálogo."""
    return make_principal(*Permission, name="Admin")


@pytest.fixture
def principal_factory() -> Callable[..., Principal]:
    return make_principal


# ============================================================================
# Pipeline helper
# ============================================================================


@pytest.fixture
def call(registry: ProcedureRegistry, store: InMemoryStore, admin: Principal):
    """
    call(name, input=None, principal=<admin>) -> resultado del handler.

    Pasa por guard + validación + handler como en producción.
    """
    _default = object()

    def _call(name: str, input: dict[str, Any] | None = None, principal: Any = _default):
        context = ProcedureContext(
            principal=admin if principal is _default else principal,
            store=store,
        )
        return registry.call(name, context, input)

    return _call


# ============================================================================
# Seed helpers
# ============================================================================


@pytest.fixture
def seed_user(store: InMemoryStore) -> Callable[..., User]:
    """Inserta un usuario (y opcionalmente su rol) directamente en el store."""

    def _seed(
        *,
        email: str = "user@example.com",
        password: str = "secret-password",
        permissions: tuple[Permission, ...] = (),
        is_active: bool = True,
        role_name: str = "Staff",
        is_system: bool = False,
    ) -> User:
        with store.transaction() as uow:
            role = uow.roles.find_one(name=role_name)
            if role is None:
                role = uow.roles.add(
                    Role(
                        name=role_name,
                        is_system=is_system,
                        permissions=tuple(
                            RolePermissionGrant(permission=p.value) for p in permissions
                        ),
                    )
                )
            return uow.users.add(
                User(
                    email=email,
                    name=email.split("@")[0],
                    password_hash=hash_password(password),
                    role_id=role.id,
                    is_active=is_active,
                )
            )

    return _seed


@pytest.fixture
def customer(call) -> Any:
    return call("customers.create_customer", {"company_name": "Acme Corp"})


@pytest.fixture
def vendor(call) -> Any:
    return call("purchasing.create_vendor", {"company_name": "Parts Inc"})
