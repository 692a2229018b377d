"""Tests for configuration resolution and update write-back."""

import threading

from cfgadmin.context import ConfigurationContext, ResourceLocator
from cfgadmin.registry import Configuration, ConfigurationSource, WarningKind
from cfgadmin.storage.properties_file import BackingStoreIOError, PropertiesFile


def _dirs(tmp_path):
    config_dir = tmp_path / "conf"
    resource_dir = tmp_path / "resources"
    config_dir.mkdir()
    resource_dir.mkdir()
    return config_dir, resource_dir


def _context(config_dir=None, resource_dir=None, **properties):
    return ConfigurationContext(
        config_path=config_dir,
        system_properties=dict(properties),
        resources=ResourceLocator(paths=[resource_dir] if resource_dir else []),
    )


SERVICE_PROPS = {"winegrower.service.app.from": "system"}


# --- Resolution ---


def test_resolves_from_directory_file(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    (config_dir / "app.cfg").write_text("# app settings\nhost = localhost\nport = 8080\n")

    config = Configuration("app", context=_context(config_dir))

    assert config.get_properties() == {"host": "localhost", "port": "8080"}
    assert config.resolution.source == ConfigurationSource.DIRECTORY
    assert config.resolution.ok


def test_directory_file_wins_without_merging(tmp_path):
    config_dir, resource_dir = _dirs(tmp_path)
    (config_dir / "app.cfg").write_text("from = directory\n")
    (resource_dir / "app.cfg").write_text("from = resource\nextra = r\n")

    config = Configuration("app", context=_context(config_dir, resource_dir, **SERVICE_PROPS))

    assert config.get_properties() == {"from": "directory"}


def test_directory_setting_suppresses_other_sources_when_file_missing(tmp_path):
    config_dir, resource_dir = _dirs(tmp_path)
    (resource_dir / "app.cfg").write_text("from = resource\n")

    config = Configuration("app", context=_context(config_dir, resource_dir, **SERVICE_PROPS))

    assert config.get_properties() == {}
    assert config.resolution.source == ConfigurationSource.NONE


def test_resource_fallback(tmp_path):
    _, resource_dir = _dirs(tmp_path)
    (resource_dir / "app.cfg").write_text("from = resource\n")

    config = Configuration("app", context=_context(None, resource_dir, **SERVICE_PROPS))

    assert config.get_properties() == {"from": "resource"}
    assert config.resolution.source == ConfigurationSource.RESOURCE


def test_system_properties_fallback():
    context = _context(
        None,
        None,
        **{
            "winegrower.service.app.host": "example.org",
            "winegrower.service.app.db.url": "jdbc:h2:mem",
            "winegrower.service.application.host": "ignored",
        },
    )
    config = Configuration("app", context=context)

    assert config.get_properties() == {"host": "example.org", "db.url": "jdbc:h2:mem"}
    assert config.resolution.source == ConfigurationSource.SYSTEM_PROPERTIES


def test_empty_resolution():
    config = Configuration("nothing", context=_context())

    assert config.get_properties() == {}
    assert config.resolution.source == ConfigurationSource.NONE
    assert config.get_change_count() == 0


def test_unreadable_directory_file_degrades_to_empty(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    (config_dir / "app.cfg").write_text("bad = \\uZZZZ\n")

    config = Configuration("app", context=_context(config_dir))

    assert config.get_properties() == {}
    assert not config.resolution.ok
    assert config.resolution.warning.kind == WarningKind.IO_ERROR
    assert config.resolution.warning.path.endswith("app.cfg")


def test_placeholders_resolve_against_system_properties(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    (config_dir / "app.cfg").write_text("url = http://${host}:${port}/\nport = 80\n")

    config = Configuration("app", context=_context(config_dir, host="example.org"))

    assert config.get_properties()["url"] == "http://example.org:80/"


def test_factory_configuration_starts_empty(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    (config_dir / "None.cfg").write_text("a = 1\n")

    config = Configuration(None, factory_pid="factory", context=_context(config_dir))

    assert config.get_pid() is None
    assert config.get_factory_pid() == "factory"
    assert config.get_properties() == {}


# --- Accessors ---


def test_properties_are_a_snapshot():
    config = Configuration("app", context=_context())
    config.update({"a": "1"})

    snapshot = config.get_properties()
    snapshot["a"] = "changed"

    assert config.get_properties() == {"a": "1"}


def test_bundle_location_does_not_re_resolve(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    config = Configuration("app", location="bundle-a", context=_context(config_dir))
    (config_dir / "app.cfg").write_text("late = 1\n")

    config.set_bundle_location("bundle-b")

    assert config.get_bundle_location() == "bundle-b"
    assert config.get_properties() == {}


def test_delete_is_a_no_op():
    config = Configuration("app", context=_context())
    config.update({"a": "1"})
    config.delete()
    assert config.get_properties() == {"a": "1"}


# --- Update ---


def test_update_writes_directory_file(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    config = Configuration("app", context=_context(config_dir))

    result = config.update({"port": 8080, "debug": True, "name": "svc"})

    assert result.persisted
    assert result.ok
    assert result.source == ConfigurationSource.DIRECTORY
    assert result.change_count == 1
    assert config.get_properties() == {"port": "8080", "debug": "true", "name": "svc"}
    stored = PropertiesFile.load_path(config_dir / "app.cfg").as_dict()
    assert stored == {"port": "8080", "debug": "true", "name": "svc"}


def test_update_round_trip_after_restart(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    context = _context(config_dir)
    Configuration("app", context=context).update({"a": "1", "b": "two words", "c": "x=y"})

    fresh = Configuration("app", context=context)

    assert fresh.get_properties() == {"a": "1", "b": "two words", "c": "x=y"}


def test_update_keeps_comments_and_drops_removed_keys(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    path = config_dir / "app.cfg"
    path.write_text("# Service settings\n\n# port to bind\nport = 80\nold = gone\n")
    config = Configuration("app", context=_context(config_dir))

    config.update({"port": "8080", "host": "0.0.0.0"})

    assert path.read_text() == "# Service settings\n\n# port to bind\nport = 8080\nhost = 0.0.0.0\n"
    assert config.get_properties() == {"port": "8080", "host": "0.0.0.0"}


def test_update_with_resource_is_flagged_not_persisted(tmp_path):
    _, resource_dir = _dirs(tmp_path)
    resource = resource_dir / "app.cfg"
    resource.write_text("a = 1\n")
    config = Configuration("app", context=_context(None, resource_dir))

    result = config.update({"a": "2", "b": "3"})

    assert not result.persisted
    assert result.source == ConfigurationSource.RESOURCE
    assert result.warning.kind == WarningKind.READ_ONLY_RESOURCE
    assert result.change_count == 1
    assert config.get_properties() == {"a": "2", "b": "3"}
    assert resource.read_text() == "a = 1\n"


def test_update_without_backing_source_replaces_in_memory():
    config = Configuration("app", context=_context(**{"winegrower.service.app.a": "1"}))

    result = config.update({"b": 2, "skip": None})

    assert config.get_properties() == {"b": "2"}
    assert result.source == ConfigurationSource.NONE
    assert not result.persisted
    assert result.ok


def test_resave_rewrites_directory_file(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    path = config_dir / "app.cfg"
    path.write_text("a = 1\n")
    config = Configuration("app", context=_context(config_dir))
    path.unlink()

    result = config.update()

    assert result.persisted
    assert result.change_count == 1
    assert PropertiesFile.load_path(path).as_dict() == {"a": "1"}
    assert config.get_properties() == {"a": "1"}


def test_resave_without_backing_source_only_counts():
    config = Configuration("app", context=_context())
    config.update({"a": "1"})

    result = config.update()

    assert result.change_count == 2
    assert result.source == ConfigurationSource.NONE
    assert config.get_properties() == {"a": "1"}


def test_update_into_missing_directory_reports_warning(tmp_path):
    config = Configuration("app", context=_context(tmp_path / "does-not-exist"))

    result = config.update({"a": "1"})

    assert not result.persisted
    assert result.warning.kind == WarningKind.IO_ERROR
    assert isinstance(result.warning.error, BackingStoreIOError)
    assert result.change_count == 1
    assert config.get_properties() == {"a": "1"}


def test_update_leaves_unreadable_file_untouched(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    path = config_dir / "app.cfg"
    path.write_text("bad = \\uZZZZ\n")
    config = Configuration("app", context=_context(config_dir))

    result = config.update({"a": "1"})

    assert result.warning.kind == WarningKind.IO_ERROR
    assert path.read_text() == "bad = \\uZZZZ\n"


def test_change_count_advances_through_failures(tmp_path, monkeypatch):
    config_dir, _ = _dirs(tmp_path)
    config = Configuration("app", context=_context(config_dir))
    config.update({"a": "1"})

    def failing_store(self, path, encoding="utf-8"):
        raise BackingStoreIOError("disk full", path)

    monkeypatch.setattr(PropertiesFile, "store", failing_store)

    before = config.get_change_count()
    results = [
        config.update({"a": "2"}),
        config.update(),
        config.update({"b": "3"}),
        config.update(),
        config.update({}),
    ]

    assert config.get_change_count() == before + 5
    assert [r.change_count for r in results] == [before + i for i in range(1, 6)]
    assert all(r.warning is not None for r in results)


def test_concurrent_updates_count_every_call():
    config = Configuration("app", context=_context())

    def worker(n):
        for i in range(50):
            config.update({"worker": n, "i": i})

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert config.get_change_count() == 400


def test_round_trip_with_unicode_line_separators(tmp_path):
    config_dir, _ = _dirs(tmp_path)
    context = _context(config_dir)
    values = {"a": "one\u2028two", "b": "x\x85y", "c": "plain"}
    Configuration("app", context=context).update(values)

    fresh = Configuration("app", context=context)

    assert fresh.get_properties() == values
