"""Unit tests for version extraction and gate evaluation."""

import pytest
from dotctl.detection.version import (
    GateAction,
    evaluate_gate,
    extract_version,
    parse_version,
    version_in_range,
)
from dotctl.models.detection import DetectionMethod, DetectionResult
from dotctl.models.resource import ApplicationGate
from packaging.version import Version


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("git version 2.43.0", "2.43.0"),
        ("NVIM v0.9.5\nBuild type: Release", "0.9.5"),
        ("zsh 5.9 (x86_64-apple-darwin23.0)", "5.9"),
        ("tmux 3.4", "3.4"),
        ("no version here", None),
        ("", None),
    ],
)
def test_extract_version(output: str, expected: str | None) -> None:
    assert extract_version(output) == expected


class TestParseVersion:
    def test_plain(self) -> None:
        assert parse_version("2.43.0") == Version("2.43.0")

    def test_distro_suffix_falls_back_to_numeric_prefix(self) -> None:
        assert parse_version("2.39.2-1ubuntu1") == Version("2.39.2")

    @pytest.mark.parametrize("text", [None, "", "unknown", "garbage"])
    def test_unparseable(self, text: str | None) -> None:
        assert parse_version(text) is None


class TestVersionInRange:
    def test_no_bounds_accepts_anything(self) -> None:
        assert version_in_range(None, None, None)
        assert version_in_range("unknown", None, None)

    def test_inclusive_bounds(self) -> None:
        assert version_in_range("2.30", "2.30", "3.0")
        assert version_in_range("3.0", "2.30", "3.0")

    def test_below_min(self) -> None:
        assert not version_in_range("2.20.1", "2.30", None)

    def test_above_max(self) -> None:
        assert not version_in_range("4.1", None, "3.9")

    def test_numeric_not_lexical(self) -> None:
        assert version_in_range("2.10", "2.9", None)

    def test_unknown_version_with_bounds(self) -> None:
        assert not version_in_range("unknown", "1.0", None)

    def test_unparseable_bound(self) -> None:
        assert not version_in_range("1.0", "not-a-version", None)


class TestEvaluateGate:
    @pytest.fixture
    def found(self) -> DetectionResult:
        return DetectionResult.found(DetectionMethod.COMMAND, version="2.43.0")

    def test_satisfied(self, found: DetectionResult) -> None:
        verdict = evaluate_gate(ApplicationGate(name="git", min_version="2.30"), found)

        assert verdict.action == GateAction.SATISFIED
        assert verdict.reason is None

    def test_disabled_always_satisfied(self) -> None:
        gate = ApplicationGate(name="git", min_version="99", skip_if_missing=True)

        assert evaluate_gate(gate, DetectionResult.disabled()).action == GateAction.SATISFIED

    def test_missing_skip(self) -> None:
        gate = ApplicationGate(name="code", skip_if_missing=True, warn_if_missing=True)

        verdict = evaluate_gate(gate, DetectionResult.not_found())

        assert verdict.action == GateAction.SKIP
        assert "'code' is not installed" in (verdict.reason or "")

    def test_missing_warn(self) -> None:
        gate = ApplicationGate(name="code", warn_if_missing=True)

        assert evaluate_gate(gate, DetectionResult.not_found()).action == GateAction.WARN

    def test_missing_continue(self) -> None:
        gate = ApplicationGate(name="code")

        assert evaluate_gate(gate, DetectionResult.not_found()).action == GateAction.CONTINUE

    def test_out_of_range(self, found: DetectionResult) -> None:
        gate = ApplicationGate(name="git", max_version="2.0", skip_if_missing=True)

        verdict = evaluate_gate(gate, found)

        assert verdict.action == GateAction.SKIP
        assert "[*, 2.0]" in (verdict.reason or "")
