from konbase.modules import DashboardItem, ExtensionAggregator, NavigationItem, SettingsPage

from conftest import FakeModule


def _enabled(registry, *modules):
    for module in modules:
        registry.register(module)
        registry.set_enabled(module.id, True)


def test_dashboard_sorted_by_priority(registry):
    _enabled(
        registry,
        FakeModule("b", dashboard=[DashboardItem(title="B", priority=5)]),
        FakeModule("a", dashboard=[DashboardItem(title="A", priority=10)]),
    )

    items = ExtensionAggregator(registry).refresh().dashboard

    assert [i.title for i in items] == ["A", "B"]
    assert [i.module_id for i in items] == ["a", "b"]


def test_ties_keep_registration_order(registry):
    _enabled(
        registry,
        FakeModule("first", dashboard=[{"title": "F1"}, {"title": "F2", "priority": 3}],
                   navigation=[{"title": "Nav F", "path": "/f", "order": 1}]),
        FakeModule("second", dashboard=[{"title": "S1"}],
                   navigation=[{"title": "Nav S", "path": "/s", "order": 1},
                               {"label": "Nav S0", "path": "/s0", "order": 0}]),
    )

    snapshot = ExtensionAggregator(registry).refresh()

    assert [i.title for i in snapshot.dashboard] == ["F2", "F1", "S1"]
    assert [i.caption for i in snapshot.navigation] == ["Nav S0", "Nav F", "Nav S"]
    priorities = [i.priority for i in snapshot.dashboard]
    assert priorities == sorted(priorities, reverse=True)


def test_disabled_modules_contribute_nothing(registry):
    registry.register(FakeModule("off", dashboard=[DashboardItem(title="Off")],
                                 navigation=[NavigationItem(title="Off", path="/off")]))

    snapshot = ExtensionAggregator(registry).refresh()

    assert snapshot.dashboard == []
    assert snapshot.navigation == []


def test_failing_provider_is_isolated(registry):
    _enabled(
        registry,
        FakeModule("broken", name="Kaputt", fail_on={"dashboard", "navigation"}),
        FakeModule("ok", dashboard=[DashboardItem(title="OK", priority=1)],
                   navigation=[NavigationItem(title="OK", path="/ok")]),
    )

    snapshot = ExtensionAggregator(registry).refresh()

    assert [i.title for i in snapshot.dashboard] == ["OK", "Kaputt"]
    placeholder = snapshot.dashboard[1]
    assert placeholder.is_error
    assert placeholder.module_id == "broken"
    assert "dashboard kaputt" in placeholder.error
    assert [i.path for i in snapshot.navigation] == ["/ok"]


def test_malformed_items_count_as_provider_failure(registry):
    _enabled(registry, FakeModule("odd", dashboard=["kein item"], navigation=[{"path": "/ohne-titel"}]))

    snapshot = ExtensionAggregator(registry).refresh()

    assert len(snapshot.dashboard) == 1 and snapshot.dashboard[0].is_error
    assert snapshot.navigation == []


def test_settings_pages_and_render_callables(registry):
    render = lambda: {"ok": True}
    _enabled(registry, FakeModule("inv", dashboard=[DashboardItem(title="Inv", render=render)],
                                  settings_page={"title": "Inventar"}))

    snapshot = ExtensionAggregator(registry).refresh()

    assert snapshot.dashboard[0].render is render
    assert "render" not in snapshot.dashboard[0].model_dump()
    assert snapshot.settings_pages == [SettingsPage(title="Inventar", module_id="inv")]


def test_refresh_is_not_cached(registry):
    module = FakeModule("inv", dashboard=[DashboardItem(title="Eins")])
    _enabled(registry, module)
    aggregator = ExtensionAggregator(registry)
    assert len(aggregator.refresh().dashboard) == 1

    module._dashboard = [DashboardItem(title="Eins"), DashboardItem(title="Zwei")]
    assert len(aggregator.refresh().dashboard) == 2

    registry.set_enabled("inv", False)
    assert aggregator.refresh().dashboard == []
