"""Per-resource reconciliation pipeline.

Each resource runs through an explicit state machine:

    Pending -> Detecting -> {Skipped | GatedWarn | Continuing}
            -> ResolvingConflict -> [BackingUp] -> Deploying
            -> SettingPermissions -> Done

with Failed reachable from every non-terminal state. Fatal errors are caught
here and turned into a failed DeploymentOutcome; recoverable conditions are
recorded as diagnostics. Independent resources run in parallel.
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path

from dotctl.core.backup import BackupManager
from dotctl.core.cancellation import CancellationToken
from dotctl.core.conflict import BACKUP_THEN_PROCEED, decide, inspect_target
from dotctl.core.deployer import Deployer, PreparedDeployment
from dotctl.core.errors import BackupError, ConflictError, DotctlError, ResourceValidationError
from dotctl.core.path_resolver import PathResolver
from dotctl.core.permissions import PermissionEnforcer, format_mode
from dotctl.core.platform import PlatformContext
from dotctl.detection.detector import Detector
from dotctl.detection.version import GateAction, evaluate_gate
from dotctl.models.conflict import ConflictAction
from dotctl.models.detection import DetectionResult
from dotctl.models.outcome import (
    BackupRecord,
    DeploymentOutcome,
    Diagnostic,
    ReconcileState,
    Severity,
)
from dotctl.models.resource import ApplicationGate, GlobalPolicy, ManagedResource, Strategy
from dotctl.templates.renderer import TemplateRenderer

logger = logging.getLogger(__name__)

S = ReconcileState

TRANSITIONS: dict[ReconcileState, frozenset[ReconcileState]] = {
    S.PENDING: frozenset({S.DETECTING, S.FAILED}),
    S.DETECTING: frozenset({S.SKIPPED, S.GATED_WARN, S.CONTINUING, S.FAILED}),
    S.SKIPPED: frozenset({S.DONE}),
    S.GATED_WARN: frozenset({S.RESOLVING_CONFLICT, S.FAILED}),
    S.CONTINUING: frozenset({S.RESOLVING_CONFLICT, S.FAILED}),
    S.RESOLVING_CONFLICT: frozenset(
        {S.BACKING_UP, S.DEPLOYING, S.SETTING_PERMISSIONS, S.DONE, S.FAILED}
    ),
    S.BACKING_UP: frozenset({S.DEPLOYING, S.FAILED}),
    S.DEPLOYING: frozenset({S.SETTING_PERMISSIONS, S.FAILED}),
    S.SETTING_PERMISSIONS: frozenset({S.DONE, S.FAILED}),
    S.DONE: frozenset(),
    S.FAILED: frozenset(),
}

MERGE_NOT_IMPLEMENTED = "content merge is not implemented; backing up and replacing instead"


class _PipelineRun:
    """Mutable bookkeeping for one resource's trip through the pipeline."""

    def __init__(self, resource_id: str, dry_run: bool) -> None:
        self.resource_id = resource_id
        self.dry_run = dry_run
        self.state = S.PENDING
        self.diagnostics: list[Diagnostic] = []
        self.applied_path: str | None = None
        self.applied_mode: str | None = None
        self.detection: DetectionResult | None = None
        self.backup: BackupRecord | None = None
        self.decision: str | None = None

    def transition(self, new_state: ReconcileState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            msg = f"Illegal transition {self.state.value} -> {new_state.value}"
            raise RuntimeError(msg)
        logger.debug("%s: %s -> %s", self.resource_id, self.state.value, new_state.value)
        self.state = new_state

    def add(self, severity: Severity, message: str) -> None:
        self.diagnostics.append(Diagnostic(severity, message, self.state))

    def finish(self, *, skipped: bool = False) -> DeploymentOutcome:
        self.transition(S.DONE)
        return self._outcome(success=True, skipped=skipped)

    def fail(self, message: str) -> DeploymentOutcome:
        logger.error("%s failed while %s: %s", self.resource_id, self.state.value, message)
        self.add(Severity.ERROR, message)
        if S.FAILED in TRANSITIONS[self.state]:
            self.transition(S.FAILED)
        else:
            self.state = S.FAILED  # error raised after a terminal state
        return self._outcome(success=False, skipped=False)

    def _outcome(self, *, success: bool, skipped: bool) -> DeploymentOutcome:
        return DeploymentOutcome(
            resource_id=self.resource_id,
            success=success,
            applied_path=self.applied_path,
            applied_mode=self.applied_mode,
            skipped=skipped,
            dry_run=self.dry_run,
            final_state=self.state,
            diagnostics=tuple(self.diagnostics),
            detection=self.detection,
            backup=self.backup,
            decision=self.decision,
        )


class Reconciler:
    """Drives declared resources toward their desired state.

    Attributes:
        _platform: Injected platform context.
        _resolver: Placeholder expansion for targets and backup directories.
        _detector: Application detector used when detection is enabled.
        _renderer: Template renderer for the template strategy.
        _clock: Time source for backup names.
    """

    def __init__(
        self,
        platform: PlatformContext,
        *,
        detector: Detector | None = None,
        renderer: TemplateRenderer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._platform = platform
        self._resolver = PathResolver(platform)
        self._detector = detector or Detector()
        self._renderer = renderer or TemplateRenderer(platform)
        self._clock = clock

    def reconcile(
        self,
        resource: ManagedResource,
        policy: GlobalPolicy,
        cancel: CancellationToken | None = None,
    ) -> DeploymentOutcome:
        """Reconcile one resource.

        Never raises for recoverable or fatal pipeline conditions; both are
        reported on the returned outcome.

        Args:
            resource: Desired state.
            policy: Global defaults and the dry-run flag.
            cancel: Token checked before backup and before mutation.

        Returns:
            DeploymentOutcome with accumulated diagnostics.
        """
        run = _PipelineRun(resource.id, policy.dry_run)
        try:
            return self._run(resource, policy, run, cancel)
        except DotctlError as e:
            return run.fail(str(e))
        except OSError as e:
            return run.fail(f"Filesystem error: {e}")
        except Exception as e:
            logger.debug("Unexpected error reconciling %s", resource.id, exc_info=True)
            return run.fail(f"Unexpected error: {type(e).__name__}: {e}")

    def reconcile_all(
        self,
        resources: Iterable[ManagedResource],
        policy: GlobalPolicy,
        *,
        max_workers: int = 4,
        cancel: CancellationToken | None = None,
    ) -> list[DeploymentOutcome]:
        """Reconcile many resources concurrently.

        Resources resolving to the same target are a configuration error:
        each of them fails validation and none of them runs.

        Args:
            resources: Resources to reconcile.
            policy: Global defaults and the dry-run flag.
            max_workers: Maximum number of concurrent pipelines.
            cancel: Token shared by all pipelines.

        Returns:
            Outcomes in the same order as ``resources``.
        """
        items = list(resources)
        outcomes: dict[int, DeploymentOutcome] = {}

        for index, message in self._duplicate_targets(items).items():
            run = _PipelineRun(items[index].id, policy.dry_run)
            outcomes[index] = run.fail(message)

        runnable = [i for i in range(len(items)) if i not in outcomes]
        if runnable:
            with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
                future_to_index = {
                    executor.submit(self.reconcile, items[i], policy, cancel): i for i in runnable
                }
                for future in as_completed(future_to_index):
                    outcomes[future_to_index[future]] = future.result()

        return [outcomes[i] for i in range(len(items))]

    def _duplicate_targets(self, resources: list[ManagedResource]) -> dict[int, str]:
        by_target: dict[Path, list[int]] = {}
        for index, resource in enumerate(resources):
            try:
                target = self._resolve_target(resource)
            except DotctlError:
                continue  # reported by the resource's own run
            by_target.setdefault(target, []).append(index)

        duplicates: dict[int, str] = {}
        for target, indexes in by_target.items():
            if len(indexes) < 2:
                continue
            ids = ", ".join(resources[i].id for i in indexes)
            for i in indexes:
                duplicates[i] = f"Target {target} is declared by multiple resources: {ids}"
        return duplicates

    def _resolve_target(self, resource: ManagedResource) -> Path:
        variables = {"application": resource.application.name} if resource.application else {}
        return self._resolver.resolve(resource.target, variables)

    def _resolve_source(self, resource: ManagedResource, policy: GlobalPolicy) -> Path:
        raw = resource.source
        if raw.startswith("~") or "{{." in raw:
            return self._resolver.resolve(raw)
        path = Path(raw)
        if path.is_absolute():
            return path
        if policy.dotfiles_root is None:
            msg = f"Relative source {raw!r} requires a dotfiles root"
            raise ResourceValidationError(msg)
        return self._resolver.resolve(policy.dotfiles_root) / path

    def _detect(self, gate: ApplicationGate, policy: GlobalPolicy) -> DetectionResult:
        detector = self._detector if policy.detect_applications else Detector(enabled=False)
        methods = gate.detection_methods or policy.detection_methods
        return detector.detect(gate.name, methods, self._platform)

    def _run(
        self,
        resource: ManagedResource,
        policy: GlobalPolicy,
        run: _PipelineRun,
        cancel: CancellationToken | None,
    ) -> DeploymentOutcome:
        target = self._resolve_target(resource)
        run.applied_path = str(target)
        source = self._resolve_source(resource, policy)

        # Gate
        run.transition(S.DETECTING)
        gate = resource.application
        if gate is None:
            run.transition(S.CONTINUING)
        else:
            run.detection = self._detect(gate, policy)
            verdict = evaluate_gate(gate, run.detection)
            if verdict.action == GateAction.SKIP:
                run.transition(S.SKIPPED)
                run.add(Severity.INFO, f"Skipped: {verdict.reason}")
                return run.finish(skipped=True)
            if verdict.action == GateAction.WARN:
                run.transition(S.GATED_WARN)
                run.add(Severity.WARNING, f"{verdict.reason}; deploying anyway")
            else:
                if verdict.reason:
                    logger.debug("%s: ignoring failed gate: %s", resource.id, verdict.reason)
                run.transition(S.CONTINUING)

        # Validation and conflict decision
        run.transition(S.RESOLVING_CONFLICT)
        strategy = resource.effective_strategy
        context = None
        if strategy == Strategy.TEMPLATE:
            context = self._renderer.build_context(resource.template_vars, resource.platform_vars)
        deployer = Deployer(dry_run=policy.dry_run, renderer=self._renderer)
        prepared = deployer.prepare(source, target, strategy, context)

        if deployer.is_converged(prepared):
            run.decision = "converged"
            run.add(Severity.INFO, f"{target} is already up to date")
            run.transition(S.SETTING_PERMISSIONS)
            self._set_permissions(resource, prepared, run, policy.dry_run)
            return run.finish()

        existing = inspect_target(target)
        conflict_policy = resource.conflict_policy or policy.conflict_policy
        decision = decide(existing, conflict_policy, strategy)
        if decision.warning:
            run.add(Severity.WARNING, decision.warning)
        if decision.action == ConflictAction.MERGE:
            run.add(Severity.WARNING, MERGE_NOT_IMPLEMENTED)
            decision = BACKUP_THEN_PROCEED
        run.decision = decision.action.value
        logger.debug(
            "%s: %s target with %s policy -> %s",
            resource.id,
            existing.value,
            conflict_policy.value,
            decision.action.value,
        )

        if decision.action == ConflictAction.ERROR:
            raise ConflictError(decision.reason or "unresolvable conflict")
        if decision.action == ConflictAction.SKIP:
            run.add(Severity.INFO, f"{target} exists ({existing.value}); left untouched by policy")
            return run.finish(skipped=True)

        # Backup
        if decision.requires_backup:
            if not resource.backup.enabled:
                msg = f"Conflict policy requires a backup of {target} but backups are disabled"
                raise BackupError(msg)
            if cancel is not None:
                cancel.raise_if_cancelled("backup")
            run.transition(S.BACKING_UP)
            backup_dir = self._resolver.resolve(resource.backup.directory or policy.backup_directory)
            manager = BackupManager(dry_run=policy.dry_run, clock=self._clock)
            result = manager.backup(
                target,
                resource.backup,
                backup_dir=backup_dir,
                resource_id=resource.id,
            )
            run.backup = result.record
            for warning in result.warnings:
                run.add(Severity.WARNING, warning)

        # Mutation
        if cancel is not None:
            cancel.raise_if_cancelled("deployment")
        run.transition(S.DEPLOYING)
        deployer.apply(prepared)

        run.transition(S.SETTING_PERMISSIONS)
        self._set_permissions(resource, prepared, run, policy.dry_run)
        return run.finish()

    def _set_permissions(
        self,
        resource: ManagedResource,
        prepared: PreparedDeployment,
        run: _PipelineRun,
        dry_run: bool,
    ) -> None:
        if prepared.strategy != Strategy.SYMLINK:
            run.applied_mode = format_mode(prepared.source_mode)
        if resource.file_mode is None and resource.directory_mode is None:
            return
        if prepared.strategy == Strategy.SYMLINK:
            run.add(
                Severity.WARNING,
                f"modes on a symlinked resource change its source {prepared.source}",
            )
        enforcer = PermissionEnforcer(dry_run=dry_run)
        outcome = enforcer.apply_mode(
            prepared.target,
            resource.file_mode,
            resource.directory_mode,
            resource.recursive,
            is_directory=prepared.source_is_dir,
        )
        if outcome.applied_mode is not None:
            run.applied_mode = outcome.applied_mode
        for warning in outcome.warnings:
            run.add(Severity.WARNING, warning)
