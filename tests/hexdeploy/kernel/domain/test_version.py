"""Tests for build-version derivation."""

import pytest

from hexdeploy.kernel.domain.version import derive_build_version, normalize_requested_version
from hexdeploy.kernel.exceptions import ValidationError


class TestDeriveBuildVersion:
    def test_combines_build_number_and_short_revision(self):
        assert derive_build_version("3f2a9c1d8e7b", 142) == "142-3f2a9c1"

    def test_lowercases_and_strips_revision(self):
        assert derive_build_version("  ABCDEF0123  ", 1) == "1-abcdef0"

    def test_same_inputs_give_same_token(self):
        assert derive_build_version("abcdef1", 5) == derive_build_version("abcdef1", 5)

    def test_full_sha_is_accepted(self):
        sha = "a" * 40
        assert derive_build_version(sha, 0) == "0-aaaaaaa"

    @pytest.mark.parametrize("revision", ["", "abc", "not-a-hash", "g" * 7, "a" * 41])
    def test_rejects_invalid_revision(self, revision):
        with pytest.raises(ValidationError, match="source_revision"):
            derive_build_version(revision, 1)

    def test_rejects_negative_build_number(self):
        with pytest.raises(ValidationError, match="build_number"):
            derive_build_version("abcdef1", -1)


class TestNormalizeRequestedVersion:
    @pytest.mark.parametrize("value", [None, "", "   ", "latest", "LATEST"])
    def test_latest_and_empty_mean_none(self, value):
        assert normalize_requested_version(value) is None

    def test_explicit_version_is_trimmed(self):
        assert normalize_requested_version(" 41-3f9c2ab ") == "41-3f9c2ab"
