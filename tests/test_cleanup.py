"""
Tests for the cleanup scope and filesystem helpers.
"""

from pathlib import Path

import pytest

from picolayer.adapters.shell.filesystem import purge_directory, remove_path, under_root
from picolayer.core.errors import CleanupWarning, ScopeClosedError
from picolayer.core.services.install.cleanup import CleanupScope, ScopeState
from tests.fakes import FakeRunner, touch


class TestCleanupScope:
    def test_runs_in_reverse_order(self):
        order = []
        scope = CleanupScope()
        scope.register("first", lambda: order.append("first"))
        scope.register("second", lambda: order.append("second"))
        scope.register("third", lambda: order.append("third"))
        report = scope.close()
        assert order == ["third", "second", "first"]
        assert report.executed == ["third", "second", "first"]

    def test_failure_becomes_warning_and_rest_still_run(self):
        ran = []

        def boom():
            raise OSError("device busy")

        scope = CleanupScope()
        scope.register("a", lambda: ran.append("a"))
        scope.register("broken", boom)
        scope.register("c", lambda: ran.append("c"))
        report = scope.close()

        assert ran == ["c", "a"]
        assert len(report.warnings) == 1
        assert isinstance(report.warnings[0], CleanupWarning)
        assert report.warnings[0].label == "broken"
        assert "device busy" in report.warning_messages[0]

    def test_close_is_idempotent(self):
        calls = []
        scope = CleanupScope()
        scope.register("once", lambda: calls.append(1))
        first = scope.close()
        second = scope.close()
        assert calls == [1]
        assert first is second
        assert scope.state == ScopeState.CLOSED

    def test_register_after_close_rejected(self):
        scope = CleanupScope()
        scope.close()
        with pytest.raises(ScopeClosedError):
            scope.register("late", lambda: None)

    def test_register_during_close_rejected(self):
        scope = CleanupScope()
        errors = []

        def nested():
            try:
                scope.register("nested", lambda: None)
            except ScopeClosedError as e:
                errors.append(e)

        scope.register("outer", nested)
        scope.close()
        assert len(errors) == 1

    def test_context_manager_closes_on_error(self, tmp_path: Path):
        target = touch(tmp_path / "leftover")
        with pytest.raises(RuntimeError):
            with CleanupScope() as scope:
                scope.remove_path("leftover", target)
                raise RuntimeError("install failed")
        assert not target.exists()

    def test_removed_paths_reported(self, tmp_path: Path):
        cache = tmp_path / "cache"
        touch(cache / "a.deb")
        touch(cache / "b.deb")
        touch(cache / "keep.txt")
        scope = CleanupScope()
        scope.purge_directory("debs", cache, ("*.deb",))
        report = scope.close()
        assert sorted(Path(p).name for p in report.removed_paths) == ["a.deb", "b.deb"]
        assert (cache / "keep.txt").exists()

    def test_run_command(self):
        runner = FakeRunner()
        scope = CleanupScope()
        scope.run_command("clean", runner, ["apt-get", "clean"], needs_root=True)
        assert runner.calls == []
        scope.close()
        assert runner.call("apt-get", "clean").needs_root

    def test_labels_and_len(self):
        scope = CleanupScope()
        scope.register("x", lambda: None)
        assert len(scope) == 1
        assert scope.labels == ["x"]


class TestFilesystemHelpers:
    def test_under_root(self, tmp_path: Path):
        assert under_root(tmp_path, "/var/cache/apt") == tmp_path / "var/cache/apt"

    def test_remove_missing_path(self, tmp_path: Path):
        assert remove_path(tmp_path / "nothing") == []

    def test_remove_tree(self, tmp_path: Path):
        touch(tmp_path / "dir" / "sub" / "f")
        assert remove_path(tmp_path / "dir") == [tmp_path / "dir"]
        assert not (tmp_path / "dir").exists()

    def test_purge_keeps_directory(self, tmp_path: Path):
        touch(tmp_path / "lists" / "a")
        touch(tmp_path / "lists" / "partial" / "b")
        removed = purge_directory(tmp_path / "lists")
        assert len(removed) == 2
        assert (tmp_path / "lists").is_dir()
        assert list((tmp_path / "lists").iterdir()) == []

    def test_purge_missing_directory(self, tmp_path: Path):
        assert purge_directory(tmp_path / "missing") == []
