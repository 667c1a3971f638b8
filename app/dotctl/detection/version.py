"""Version extraction and application gate evaluation."""

import re
from dataclasses import dataclass
from enum import Enum

from packaging.version import InvalidVersion, Version

from dotctl.models.detection import METHOD_DISABLED, UNKNOWN_VERSION, DetectionResult
from dotctl.models.resource import ApplicationGate

_VERSION_PATTERN = re.compile(r"\d+(?:\.\d+)+(?:[-+._]?[A-Za-z0-9]+)*|\d+")


def extract_version(output: str) -> str | None:
    """Pull the first version-looking token out of tool output.

    Args:
        output: Text such as ``git version 2.43.0``.

    Returns:
        The version token (``2.43.0``), or None if nothing matched.
    """
    for line in output.splitlines():
        match = _VERSION_PATTERN.search(line)
        if match:
            return match.group(0)
    return None


def parse_version(text: str | None) -> Version | None:
    """Parse a version string leniently.

    A leading ``v`` and distro suffixes such as ``-1ubuntu1`` are tolerated
    by falling back to the dotted numeric prefix.

    Returns:
        Parsed Version, or None if the text is empty, "unknown" or unparseable.
    """
    if not text or text == UNKNOWN_VERSION:
        return None
    candidate = text.strip()
    try:
        return Version(candidate)
    except InvalidVersion:
        pass
    match = re.match(r"v?(\d+(?:\.\d+)*)", candidate)
    if match is None:
        return None
    try:
        return Version(match.group(1))
    except InvalidVersion:
        return None


def version_in_range(version: str | None, min_version: str | None, max_version: str | None) -> bool:
    """Check a version against inclusive bounds.

    Without bounds every version, including a missing one, is in range.
    With bounds, a missing or unparseable version is out of range, and so
    is an unparseable bound.

    Args:
        version: Detected version.
        min_version: Lowest acceptable version, or None.
        max_version: Highest acceptable version, or None.

    Returns:
        True if the version satisfies every specified bound.
    """
    if min_version is None and max_version is None:
        return True
    parsed = parse_version(version)
    if parsed is None:
        return False
    if min_version is not None:
        lower = parse_version(min_version)
        if lower is None or parsed < lower:
            return False
    if max_version is not None:
        upper = parse_version(max_version)
        if upper is None or parsed > upper:
            return False
    return True


class GateAction(str, Enum):
    """What the pipeline should do after evaluating a gate."""

    SATISFIED = "satisfied"
    SKIP = "skip"
    WARN = "warn"
    CONTINUE = "continue"


@dataclass(frozen=True, slots=True)
class GateVerdict:
    """Result of evaluating an application gate.

    Attributes:
        action: SATISFIED when the gate passed; otherwise what to do about it.
        reason: Why the gate failed, None when satisfied.
    """

    action: GateAction
    reason: str | None = None


def evaluate_gate(gate: ApplicationGate, result: DetectionResult) -> GateVerdict:
    """Decide how a detection result affects the pipeline.

    Args:
        gate: The resource's application gate.
        result: Fresh detection result for the gated application.

    Returns:
        GateVerdict: SATISFIED, or SKIP / WARN / CONTINUE according to the
        gate's skip_if_missing and warn_if_missing flags.
    """
    if result.method == METHOD_DISABLED:
        return GateVerdict(GateAction.SATISFIED)
    if not result.installed:
        reason = f"application {gate.name!r} is not installed"
    elif not version_in_range(result.version, gate.min_version, gate.max_version):
        bounds = f"[{gate.min_version or '*'}, {gate.max_version or '*'}]"
        reason = (
            f"application {gate.name!r} version {result.version or UNKNOWN_VERSION} "
            f"is outside {bounds}"
        )
    else:
        return GateVerdict(GateAction.SATISFIED)

    if gate.skip_if_missing:
        return GateVerdict(GateAction.SKIP, reason)
    if gate.warn_if_missing:
        return GateVerdict(GateAction.WARN, reason)
    return GateVerdict(GateAction.CONTINUE, reason)
