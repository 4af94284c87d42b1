# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Shared fixtures: small schema registries and in-memory fakes of the row API
# and storage clients, so no test touches the network or sleeps.
# =============================================================================

import threading
from typing import Any, Dict, List, Optional

import pytest

from clinicmigrate.exceptions import TransientNetworkError
from clinicmigrate.models.schema import EXTERNAL_IDENTITY, ForeignKeyEdge, TableDefinition
from clinicmigrate.services.retry import RetryPolicy
from clinicmigrate.services.schema_registry import SchemaRegistry


# =============================================================================
# Fakes
# =============================================================================

class FakeRestClient:
    """Serves rows from memory; ``failures`` maps table -> exception raised on any page."""

    def __init__(self, tables: Dict[str, List[Dict[str, Any]]], failures: Optional[Dict[str, Exception]] = None):
        self.tables = tables
        self.failures = failures or {}
        self.calls: List[tuple] = []

    def fetch_page(self, table, offset, limit, order_by=None):
        self.calls.append((table, offset, limit, order_by))
        if table in self.failures:
            raise self.failures[table]
        return [dict(r) for r in self.tables.get(table, [])[offset:offset + limit]]

    def count_rows(self, table):
        if table in self.failures:
            raise self.failures[table]
        return len(self.tables.get(table, []))


class FakeStorageClient:
    """
    In-memory bucket.

    ``tree`` maps prefix -> listing entries, ``files`` maps path -> bytes,
    ``flaky`` maps path -> number of failed attempts before success, and
    ``broken_prefixes`` lists prefixes whose listing fails.
    """

    def __init__(self, tree, files, flaky=None, broken_prefixes=()):
        self.tree = tree
        self.files = files
        self.flaky = dict(flaky or {})
        self.broken_prefixes = set(broken_prefixes)
        self.attempts: Dict[str, int] = {}
        self.list_calls: List[tuple] = []
        self._lock = threading.Lock()

    def list(self, bucket, prefix="", limit=1000, offset=0):
        self.list_calls.append((bucket, prefix, limit, offset))
        if prefix in self.broken_prefixes:
            raise TransientNetworkError(f"listing {prefix} failed", status_code=503)
        return self.tree.get(prefix, [])[offset:offset + limit]

    def download(self, bucket, path):
        with self._lock:
            self.attempts[path] = self.attempts.get(path, 0) + 1
            attempt = self.attempts[path]
        if attempt <= self.flaky.get(path, 0):
            raise TransientNetworkError(f"download of {path} timed out")
        return self.files[path]


def file_entry(name: str) -> Dict[str, Any]:
    return {"name": name, "id": f"id-{name}", "metadata": {"size": 1}}


def folder_entry(name: str) -> Dict[str, Any]:
    return {"name": name, "id": None}


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def small_registry():
    """branches <- rooms <- appointments, profiles -> auth.users, self-referencing categories."""
    tables = [
        TableDefinition("branches", "Sedes", "Configuración", 1),
        TableDefinition("profiles", "Perfiles", "Configuración", 2, frozenset({EXTERNAL_IDENTITY})),
        TableDefinition("rooms", "Salas", "Configuración", 3, frozenset({"branches"})),
        TableDefinition("categories", "Categorías", "Inventario", 4, frozenset({"branches"})),
        TableDefinition("appointments", "Citas", "Clínicos", 5, frozenset({"rooms", "branches", "profiles"})),
    ]
    edges = [
        ForeignKeyEdge("profiles", "user_id", EXTERNAL_IDENTITY, "id", nullable=False),
        ForeignKeyEdge("rooms", "branch_id", "branches", "id", nullable=False),
        ForeignKeyEdge("categories", "branch_id", "branches", "id", nullable=False),
        ForeignKeyEdge("categories", "parent_id", "categories", "id", nullable=True),
        ForeignKeyEdge("appointments", "branch_id", "branches", "id", nullable=False),
        ForeignKeyEdge("appointments", "room_id", "rooms", "id", nullable=True),
        ForeignKeyEdge("appointments", "doctor_id", "profiles", "user_id", nullable=True),
    ]
    return SchemaRegistry(tables, edges)


@pytest.fixture
def clinical_registry():
    return SchemaRegistry.default()


@pytest.fixture
def sample_rows():
    return {
        "branches": [
            {"id": "b1", "name": "Central", "active": True},
            {"id": "b2", "name": "Norte", "active": False},
        ],
        "profiles": [
            {"id": "p1", "user_id": "u1", "full_name": "Dra. Pérez"},
        ],
        "rooms": [
            {"id": "r1", "branch_id": "b1", "name": "Sala 1"},
            {"id": "r2", "branch_id": "b2", "name": "Sala 2"},
            {"id": "r3", "branch_id": "b1", "name": None},
        ],
        "categories": [],
        "appointments": [
            {"id": "a1", "branch_id": "b1", "room_id": "r1", "doctor_id": "u1", "notes": {"tags": ["x"]}},
        ],
    }


@pytest.fixture
def rest_client_factory():
    return FakeRestClient


@pytest.fixture
def storage_client_factory():
    return FakeStorageClient


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    return []


@pytest.fixture
def no_sleep_policy(sleeps):
    return RetryPolicy(max_attempts=3, base_delay=0.5, sleep=sleeps.append)
