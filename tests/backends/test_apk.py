"""
Tests for the apk backend on a fake Alpine root.
"""

import pytest

from picolayer.adapters.packages.apk import ApkBackend
from picolayer.core.models.request import InstallRequest
from tests.fakes import execute, touch, write_os_release


@pytest.fixture
def backend(context, runner, sysroot) -> ApkBackend:
    write_os_release(sysroot, "alpine")
    runner.available.add("apk")

    def _update(argv):
        touch(sysroot / "var/cache/apk/APKINDEX.66df2e5e.tar.gz")

    runner.on("apk", "update", effect=_update)
    runner.respond(
        "apk", "list", "--installed",
        stdout="curl-8.5.0-r0 x86_64 {curl} (curl) [installed]\n",
    )
    return ApkBackend(context)


class TestApk:
    def test_install(self, backend, runner, sysroot):
        result = execute(backend, InstallRequest(kind="apk", target="curl"))

        assert result.ok, result.message
        assert result.resolved_version == "8.5.0-r0"
        assert runner.index("apk", "update") < runner.index("apk", "add")
        assert runner.call("apk", "add").args == ["apk", "add", "--no-cache", "curl"]
        assert not any((sysroot / "var/cache/apk").iterdir())

    def test_cache_clean_failure_tolerated(self, backend, runner):
        runner.respond("apk", "cache", "clean", exit_code=1)
        result = execute(backend, InstallRequest(kind="apk", target="curl"))
        assert result.ok
        assert result.warnings == []

    @pytest.mark.parametrize(
        "version,spec",
        [("8.5.0-r0", "curl=8.5.0-r0"), (">=8.0", "curl>=8.0"), ("~=8.5", "curl~8.5")],
    )
    def test_version_constraints(self, backend, runner, version, spec):
        execute(backend, InstallRequest(kind="apk", target="curl", version=version))
        assert runner.call("apk", "add").args[-1] == spec

    def test_compound_range_rejected(self, backend):
        result = execute(backend, InstallRequest(kind="apk", target="curl", version=">=8,<9"))
        assert result.error_type == "InvalidRequest"

    def test_requires_alpine(self, context, runner):
        runner.available.add("apk")
        result = execute(ApkBackend(context), InstallRequest(kind="apk", target="curl"))
        assert result.error_type == "InvalidRequest"
        assert "Alpine" in result.message

    def test_failed_add_still_purges(self, backend, runner, sysroot):
        runner.respond("apk", "add", exit_code=1)
        result = execute(backend, InstallRequest(kind="apk", target="nosuchpkg"))
        assert result.failed
        assert not any((sysroot / "var/cache/apk").iterdir())
