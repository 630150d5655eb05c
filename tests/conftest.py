"""
Pytest-Konfiguration und gemeinsame Fixtures für das Modul-System.
"""

import asyncio

import pytest

from konbase.bus import EventBus
from konbase.config import create_store_engine
from konbase.modules import KonbaseModule, ModuleManager, ModuleRegistry, ModuleService


class FakeModule(KonbaseModule):
    """Konfigurierbares Test-Modul, das mitzählt, welche Hooks liefen."""

    def __init__(self, id="inv", name=None, version="1.0.0", requires=(), permissions=(),
                 migrations=None, dashboard=None, navigation=None, settings_page=None,
                 schema=None, fail_on=()):
        super().__init__()
        self.id = id
        self.name = name if name is not None else f"Module {id}"
        self.version = version
        self.requires = list(requires)
        self.permissions = list(permissions)
        self._migrations = migrations or []
        self._dashboard = dashboard
        self._navigation = navigation
        self._settings_page = settings_page
        self._schema = schema
        self.fail_on = set(fail_on)
        self.calls = []

    def _hook(self, hook, *args):
        self.calls.append((hook,) + args)
        if hook in self.fail_on:
            raise RuntimeError(f"{hook} kaputt")

    def on_register(self):
        self._hook("on_register")

    def on_enable(self):
        self._hook("on_enable")

    def on_disable(self):
        self._hook("on_disable")

    def on_update(self, prev_version):
        self._hook("on_update", prev_version)

    def get_dashboard_items(self):
        if "dashboard" in self.fail_on:
            raise RuntimeError("dashboard kaputt")
        return self._dashboard or []

    def get_navigation_items(self):
        if "navigation" in self.fail_on:
            raise RuntimeError("navigation kaputt")
        return self._navigation or []

    def get_settings_page(self):
        return self._settings_page

    def get_migrations(self):
        return self._migrations

    def get_configuration_schema(self):
        return self._schema


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def engine():
    eng = create_store_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def registry(bus):
    return ModuleRegistry(bus)


@pytest.fixture
def service(registry, engine):
    svc = ModuleService(registry, engine)
    run(svc.initialize())
    return svc


@pytest.fixture
def manager(engine, bus):
    return ModuleManager(engine, bus)


@pytest.fixture
def counting_migration():
    """Liefert (migration-dict, zähler) für eine Migration, die nur mitzählt."""
    def factory(version, fail=False):
        counter = {"runs": 0}

        def operation(conn):
            counter["runs"] += 1
            if fail:
                raise RuntimeError(f"Migration {version} kaputt")

        return {"version": version, "description": f"Migration {version}", "operation": operation}, counter
    return factory
