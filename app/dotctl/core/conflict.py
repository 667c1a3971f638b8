"""Conflict resolution for occupied target paths.

The decision for every (existing state, policy, strategy) combination is
written out below as literal tables. decide() only looks values up; it
never derives a decision from control flow.
"""

import logging
import os
import stat
from pathlib import Path

from dotctl.models.conflict import ConflictAction, ConflictDecision, ExistingState
from dotctl.models.resource import ConflictPolicy, Strategy

logger = logging.getLogger(__name__)

PROCEED = ConflictDecision(ConflictAction.PROCEED)
SKIP = ConflictDecision(ConflictAction.SKIP)
BACKUP_THEN_PROCEED = ConflictDecision(ConflictAction.BACKUP_THEN_PROCEED)
MERGE = ConflictDecision(ConflictAction.MERGE)

_MERGE_UNSUPPORTED = "merge is not supported for {what}; backing up and replacing instead"
_PROMPT_UNSUPPORTED = "prompt policy requires an interactive session"


def _merge_fallback(what: str) -> ConflictDecision:
    return ConflictDecision(
        ConflictAction.BACKUP_THEN_PROCEED,
        warning=_MERGE_UNSUPPORTED.format(what=what),
    )


# Policy x occupied state, for every policy whose decision ignores strategy.
POLICY_TABLE: dict[ConflictPolicy, dict[ExistingState, ConflictDecision]] = {
    ConflictPolicy.OVERWRITE: {
        ExistingState.REGULAR_FILE: PROCEED,
        ExistingState.SYMLINK: PROCEED,
        ExistingState.DIRECTORY: PROCEED,
    },
    ConflictPolicy.SKIP: {
        ExistingState.REGULAR_FILE: SKIP,
        ExistingState.SYMLINK: SKIP,
        ExistingState.DIRECTORY: SKIP,
    },
    ConflictPolicy.BACKUP: {
        ExistingState.REGULAR_FILE: BACKUP_THEN_PROCEED,
        ExistingState.SYMLINK: BACKUP_THEN_PROCEED,
        ExistingState.DIRECTORY: BACKUP_THEN_PROCEED,
    },
    ConflictPolicy.PROMPT: {
        ExistingState.REGULAR_FILE: ConflictDecision(ConflictAction.ERROR, _PROMPT_UNSUPPORTED),
        ExistingState.SYMLINK: ConflictDecision(ConflictAction.ERROR, _PROMPT_UNSUPPORTED),
        ExistingState.DIRECTORY: ConflictDecision(ConflictAction.ERROR, _PROMPT_UNSUPPORTED),
    },
}

# Merge policy x occupied state x strategy.
MERGE_TABLE: dict[tuple[ExistingState, Strategy], ConflictDecision] = {
    (ExistingState.REGULAR_FILE, Strategy.COPY): MERGE,
    (ExistingState.REGULAR_FILE, Strategy.TEMPLATE): MERGE,
    (ExistingState.REGULAR_FILE, Strategy.SYMLINK): _merge_fallback("the symlink strategy"),
    (ExistingState.SYMLINK, Strategy.COPY): _merge_fallback("symlinks"),
    (ExistingState.SYMLINK, Strategy.TEMPLATE): _merge_fallback("symlinks"),
    (ExistingState.SYMLINK, Strategy.SYMLINK): _merge_fallback("symlinks"),
    (ExistingState.DIRECTORY, Strategy.COPY): _merge_fallback("directories"),
    (ExistingState.DIRECTORY, Strategy.TEMPLATE): _merge_fallback("directories"),
    (ExistingState.DIRECTORY, Strategy.SYMLINK): _merge_fallback("directories"),
}


def decide(
    existing_state: ExistingState,
    conflict_policy: ConflictPolicy,
    strategy: Strategy,
) -> ConflictDecision:
    """Look up the conflict decision for an occupied or free target.

    Args:
        existing_state: What currently occupies the target.
        conflict_policy: Configured conflict policy.
        strategy: Deployment strategy of the resource.

    Returns:
        The ConflictDecision from the tables. An absent target always
        yields PROCEED regardless of policy.
    """
    if existing_state == ExistingState.ABSENT:
        return PROCEED
    if conflict_policy == ConflictPolicy.MERGE:
        return MERGE_TABLE[(existing_state, strategy)]
    return POLICY_TABLE[conflict_policy][existing_state]


def decision_table() -> dict[tuple[ExistingState, ConflictPolicy, Strategy], ConflictDecision]:
    """Expand the tables into one mapping covering every combination.

    Returns:
        Mapping of (state, policy, strategy) to its decision.
    """
    return {
        (state, policy, strategy): decide(state, policy, strategy)
        for state in ExistingState
        for policy in ConflictPolicy
        for strategy in Strategy
    }


def inspect_target(path: Path) -> ExistingState:
    """Classify what occupies ``path`` without following symlinks.

    Args:
        path: Target path to inspect.

    Returns:
        The ExistingState of the path. Other file types (sockets, FIFOs,
        devices) are reported as REGULAR_FILE.
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return ExistingState.ABSENT
    if stat.S_ISLNK(st.st_mode):
        return ExistingState.SYMLINK
    if stat.S_ISDIR(st.st_mode):
        return ExistingState.DIRECTORY
    return ExistingState.REGULAR_FILE
