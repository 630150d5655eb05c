from konbase.modules import DashboardItem, MigrationError

from conftest import FakeModule, run


def test_boot_discovers_plugin_package(manager):
    run(manager.boot("plugins"))

    ids = [m.id for m in manager.list_manifests()]
    assert "konbase.inventory_stats" in ids
    assert manager.registry.initialized


def test_boot_with_missing_package_still_initializes(manager):
    run(manager.boot("does_not_exist"))
    assert manager.registry.initialized
    assert manager.list_manifests() == []


def test_sample_module_enable_flow(manager):
    run(manager.boot("plugins"))

    result = run(manager.enable("konbase.inventory_stats"))

    assert result, result.message
    versions = run(manager.service.get_applied_versions("konbase.inventory_stats"))
    assert versions == {"1.0.0", "1.1.0"}
    titles = [i.title for i in manager.get_dashboard_extensions()]
    assert "Inventar-Überblick" in titles
    assert [n.path for n in manager.get_navigation_extensions()] == ["/inventory/stats"]
    assert [p.title for p in manager.get_settings_pages()] == ["Inventar-Statistik"]


def test_scenario_register_enable_ledger(manager, counting_migration):
    migration, _ = counting_migration("1.0.0")
    run(manager.boot())

    assert run(manager.register(FakeModule("inv", version="1.0.0", migrations=[migration])))
    assert run(manager.enable("inv"))

    records = run(manager.service.list_migration_records("inv"))
    assert [(r.module_id, r.version) for r in records] == [("inv", "1.0.0")]
    assert [m.is_enabled for m in manager.list_manifests() if m.id == "inv"] == [True]


def test_duplicate_register_returns_false(manager):
    run(manager.boot())

    assert run(manager.register(FakeModule("inv")))
    assert not run(manager.register(FakeModule("inv")))
    assert [m.id for m in manager.list_manifests()].count("inv") == 1


def test_enable_failure_is_reported_not_raised(manager, counting_migration):
    v1, _ = counting_migration("v1")
    v2, _ = counting_migration("v2", fail=True)
    run(manager.boot())
    run(manager.register(FakeModule("m2", migrations=[v1, v2])))

    result = run(manager.enable("m2"))

    assert not result
    assert isinstance(result.error, MigrationError)
    assert "v2" in result.message
    assert run(manager.service.get_applied_versions("m2")) == {"v1"}
    assert [m.is_enabled for m in manager.list_manifests() if m.id == "m2"] == [False]


def test_lifecycle_events_are_emitted(manager, bus):
    events = []
    for topic in ["module:registered", "module:enabled", "module:disabled", "system:modules_ready"]:
        bus.subscribe(topic)(lambda payload, topic=topic: events.append((topic, payload.get("id"))))

    run(manager.boot())
    run(manager.register(FakeModule("inv")))
    run(manager.enable("inv"))
    run(manager.disable("inv"))

    assert events == [
        ("system:modules_ready", None),
        ("module:registered", "inv"),
        ("module:enabled", "inv"),
        ("module:disabled", "inv"),
    ]


def test_register_before_boot_is_reconciled(manager):
    module = FakeModule("early", dashboard=[DashboardItem(title="Früh")])
    run(manager.register(module))
    run(manager.boot())

    stored = [m.id for m in run(manager.service.load_manifests())]
    assert stored == ["early"]


def test_list_manifests_returns_copies(manager):
    run(manager.boot())
    run(manager.register(FakeModule("inv")))

    manager.list_manifests()[0].is_enabled = True

    assert manager.registry.is_enabled("inv") is False


def test_configuration_via_manager(manager):
    run(manager.boot("plugins"))

    saved = run(manager.save_configuration({
        "module_id": "konbase.inventory_stats",
        "settings": {"low_stock_alerts": True, "low_stock_threshold": 2},
    }))

    assert saved.settings["low_stock_threshold"] == 2
    loaded = run(manager.get_configuration("konbase.inventory_stats"))
    assert loaded.settings == {"low_stock_alerts": True, "low_stock_threshold": 2}


def test_sample_module_tracks_stock_and_warns(manager, bus):
    alerts = []
    bus.subscribe("inventory:low_stock")(alerts.append)
    run(manager.boot("plugins"))
    module = manager.registry.get("konbase.inventory_stats")

    # Nicht aktiv: Events werden ignoriert
    bus.emit("inventory:changed", {"association_id": "a1", "item_count": 1})
    assert module.render_card()["items"] == 0

    run(manager.enable("konbase.inventory_stats"))
    run(manager.save_configuration({
        "module_id": "konbase.inventory_stats",
        "settings": {"low_stock_alerts": True, "low_stock_threshold": 3},
    }))

    bus.emit("inventory:changed", {"association_id": "a1", "item_count": 10})
    assert alerts == []
    assert module.render_card()["items"] == 10

    bus.emit("inventory:changed", {"association_id": "a1", "item_count": 2})
    assert alerts == [{"association_id": "a1", "item_count": 2}]
    assert module.render_card()["items"] == 2
