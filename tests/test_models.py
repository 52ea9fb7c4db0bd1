"""
Tests for domain models — version constraints, requests, results, digests.
"""

import pytest

from picolayer.core.errors import InvalidRequest
from picolayer.core.models.release import Digest, ReleaseAsset
from picolayer.core.models.request import InstallRequest, parse_flag, split_list
from picolayer.core.models.result import InstallResult, Outcome
from picolayer.core.models.version import VersionConstraint, parse_version

# ── Version constraints ──────────────────────────────────────────────


class TestVersionConstraint:
    def test_latest_is_default(self):
        assert VersionConstraint.parse(None).is_latest
        assert VersionConstraint.parse("").is_latest
        assert VersionConstraint.parse("LATEST").is_latest

    def test_exact(self):
        c = VersionConstraint.parse("2.32.1")
        assert c.is_exact
        assert c.matches("2.32.1")
        assert c.matches("v2.32.1")
        assert not c.matches("2.32.2")

    def test_debian_style_exact_version(self):
        c = VersionConstraint.parse("3.03+dfsg2-8")
        assert c.is_exact

    def test_range(self):
        c = VersionConstraint.parse(">=1.2,<2")
        assert c.is_range
        assert c.matches("1.2.0")
        assert c.matches("v1.9.9")
        assert not c.matches("2.0.0")
        assert not c.matches("1.1")

    def test_compatible_release(self):
        c = VersionConstraint.parse("~=1.4")
        assert c.matches("1.4")
        assert c.matches("1.9.1")
        assert not c.matches("2.0")
        assert not c.matches("1.3")

    def test_compatible_release_needs_two_components(self):
        with pytest.raises(InvalidRequest):
            VersionConstraint.parse("~=1")

    def test_invalid_range(self):
        with pytest.raises(InvalidRequest):
            VersionConstraint.parse(">=banana")

    def test_invalid_exact(self):
        with pytest.raises(InvalidRequest):
            VersionConstraint.parse("1.0 beta")

    def test_range_ignores_non_numeric_tags(self):
        assert not VersionConstraint.parse(">=1").matches("nightly")

    def test_range_text(self):
        c = VersionConstraint.parse(">=1.2, <2")
        assert c.range_text() == ">=1.2,<2"
        assert c.range_text(" ") == ">=1.2 <2"

    def test_parse_version(self):
        assert parse_version("v1.2.3-rc1") == (1, 2, 3)
        assert parse_version("nightly") is None


# ── Requests ─────────────────────────────────────────────────────────


class TestInstallRequest:
    def test_items_split_commas(self):
        req = InstallRequest(kind="apt-get", target="curl, git,,jq")
        assert req.items == ["curl", "git", "jq"]

    def test_flags(self):
        req = InstallRequest(kind="npm", target="x", options={"keep-runtime": "yes"})
        assert req.flag("keep-runtime")
        assert not req.flag("missing")
        assert req.flag("missing", default=True)

    def test_frozen(self):
        req = InstallRequest(kind="apk", target="curl")
        with pytest.raises(Exception):
            req.target = "git"

    def test_constraint_property(self):
        req = InstallRequest(kind="apk", target="curl", version=">=8")
        assert req.constraint.is_range

    def test_helpers(self):
        assert split_list(" a ,b ") == ["a", "b"]
        assert parse_flag("off", default=True) is False
        assert parse_flag("maybe", default=True) is True


# ── Results ──────────────────────────────────────────────────────────


class TestInstallResult:
    def test_success(self):
        r = InstallResult.success(kind="apk", target="curl", resolved_version="8.5.0")
        assert r.ok
        assert not r.failed
        assert r.outcome == Outcome.SUCCESS

    def test_failure_to_dict(self):
        r = InstallResult.failure(
            kind="apk", target="curl", message="boom", error_type="InvalidRequest"
        )
        data = r.to_dict()
        assert data["outcome"] == "failed"
        assert data["error_type"] == "InvalidRequest"
        assert data["paths_removed"] == []


# ── Digests ──────────────────────────────────────────────────────────


class TestDigest:
    def test_parse(self):
        d = Digest.parse("SHA256:" + "AB" * 32)
        assert d.algorithm == "sha256"
        assert d.value == "ab" * 32
        assert str(d) == "sha256:" + "ab" * 32

    def test_parse_rejects_bad_length(self):
        with pytest.raises(InvalidRequest):
            Digest.parse("sha256:abc")

    def test_parse_rejects_unknown_algorithm(self):
        with pytest.raises(InvalidRequest):
            Digest.parse("md5:" + "a" * 32)

    def test_parse_requires_algorithm(self):
        with pytest.raises(InvalidRequest):
            Digest.parse("a" * 64)

    def test_from_hex_guesses_algorithm(self):
        assert Digest.from_hex("a" * 128).algorithm == "sha512"

    def test_compute(self):
        d = Digest.compute(b"hello")
        assert d.value == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"

    def test_asset_digest(self):
        asset = ReleaseAsset(tag="v1", name="a", url="u", checksum="sha256:" + "0" * 64)
        assert asset.digest == Digest(algorithm="sha256", value="0" * 64)
        assert ReleaseAsset(tag="v1", name="a", url="u").digest is None
