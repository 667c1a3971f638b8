"""Unit tests for the reconciliation pipeline."""

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from dotctl.core.cancellation import CancellationToken
from dotctl.core.platform import PlatformContext
from dotctl.core.reconciler import TRANSITIONS, Reconciler
from dotctl.detection.detector import Detector
from dotctl.models.detection import DetectionMethod, DetectionResult
from dotctl.models.outcome import ReconcileState, Severity
from dotctl.models.resource import (
    ApplicationGate,
    BackupPolicy,
    ConflictPolicy,
    GlobalPolicy,
    ManagedResource,
    Strategy,
)


def _resource(**kwargs) -> ManagedResource:
    data = {"id": "zshrc", "source": "zsh/zshrc", "target": "~/.zshrc"}
    data.update(kwargs)
    return ManagedResource(**data)


@pytest.fixture
def reconciler(linux: PlatformContext, make_detector, fixed_clock) -> Reconciler:
    return Reconciler(linux, detector=make_detector({}), clock=fixed_clock)


class TestScenarios:
    """End-to-end reconciliation scenarios."""

    def test_absent_target_symlink(
        self, reconciler: Reconciler, policy: GlobalPolicy, dotfiles: Path, home: Path
    ) -> None:
        """Scenario A: absent target is linked without a backup."""
        outcome = reconciler.reconcile(_resource(), policy)

        target = home / ".zshrc"
        assert outcome.success
        assert outcome.decision == "proceed"
        assert outcome.backup is None
        assert target.is_symlink()
        assert os.path.realpath(target) == str((dotfiles / "zsh" / "zshrc").resolve())
        assert target.read_bytes() == (dotfiles / "zsh" / "zshrc").read_bytes()
        assert outcome.final_state == ReconcileState.DONE

    def test_existing_file_backed_up_then_copied(
        self, reconciler: Reconciler, policy: GlobalPolicy, dotfiles: Path, home: Path
    ) -> None:
        """Scenario B: an existing file is backed up before being replaced."""
        target = home / ".zshrc"
        target.write_text("pre-deploy\n")

        outcome = reconciler.reconcile(_resource(strategy=Strategy.COPY), policy)

        assert outcome.success
        assert outcome.decision == "backup_then_proceed"
        assert outcome.backup is not None
        backup_path = Path(outcome.backup.backup_path)
        assert backup_path.parent == Path(policy.backup_directory)
        assert backup_path.read_text() == "pre-deploy\n"
        assert target.read_text() == "export EDITOR=nvim\n"
        assert outcome.applied_mode is not None

    def test_skip_policy_leaves_target(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        """Scenario C: skip policy leaves an existing file alone."""
        target = home / ".zshrc"
        target.write_text("keep me\n")

        outcome = reconciler.reconcile(_resource(conflict_policy=ConflictPolicy.SKIP), policy)

        assert outcome.success
        assert outcome.skipped
        assert target.read_text() == "keep me\n"
        assert not target.is_symlink()

    def test_missing_application_skips(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        """Scenario D: a failed gate with skip_if_missing skips the resource."""
        resource = _resource(application=ApplicationGate(name="git", skip_if_missing=True))

        outcome = reconciler.reconcile(resource, policy)

        assert outcome.success
        assert outcome.skipped
        assert outcome.detection is not None
        assert outcome.detection.method == "not_found"
        assert not (home / ".zshrc").exists()

    def test_dry_run_overwrite_changes_nothing(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        """Scenario E: dry-run reports success without touching the file."""
        target = home / ".zshrc"
        target.write_text("untouched\n")
        dry = policy.model_copy(update={"dry_run": True, "conflict_policy": ConflictPolicy.OVERWRITE})

        outcome = reconciler.reconcile(_resource(), dry)

        assert outcome.success
        assert outcome.dry_run
        assert target.read_text() == "untouched\n"
        assert not target.is_symlink()


class TestInvariants:
    """Idempotence, dry-run symmetry and backup safety."""

    @pytest.mark.parametrize("strategy", [Strategy.SYMLINK, Strategy.COPY])
    def test_idempotent(
        self,
        reconciler: Reconciler,
        policy: GlobalPolicy,
        home: Path,
        tmp_path: Path,
        strategy: Strategy,
    ) -> None:
        """A second run converges without backups or new warnings."""
        resource = _resource(strategy=strategy)
        (home / ".zshrc").write_text("old\n")

        first = reconciler.reconcile(resource, policy)
        state_after_first = (home / ".zshrc").read_bytes()
        backups_after_first = sorted((tmp_path / "backups").iterdir())
        second = reconciler.reconcile(resource, policy)

        assert first.success and second.success
        assert second.decision == "converged"
        assert second.backup is None
        assert (home / ".zshrc").read_bytes() == state_after_first
        assert sorted((tmp_path / "backups").iterdir()) == backups_after_first
        assert first.non_informational() == second.non_informational()

    @pytest.mark.parametrize(
        "resource",
        [
            _resource(),
            _resource(strategy=Strategy.COPY, file_mode="0600"),
            _resource(conflict_policy=ConflictPolicy.MERGE, strategy=Strategy.COPY),
            _resource(source="zsh/missing"),
            _resource(conflict_policy=ConflictPolicy.PROMPT),
        ],
        ids=["symlink", "copy-mode", "merge", "missing-source", "prompt"],
    )
    def test_dry_run_symmetry(
        self,
        reconciler: Reconciler,
        policy: GlobalPolicy,
        home: Path,
        resource: ManagedResource,
    ) -> None:
        """Dry-run matches the live result and leaves the target unchanged."""
        target = home / ".zshrc"
        target.write_text("before\n")
        os.chmod(target, 0o644)

        dry = reconciler.reconcile(resource, policy.model_copy(update={"dry_run": True}))

        assert target.read_text() == "before\n"
        assert not target.is_symlink()
        assert os.stat(target).st_mode & 0o777 == 0o644

        live = reconciler.reconcile(resource, policy)

        assert dry.success == live.success
        assert dry.skipped == live.skipped
        assert dry.decision == live.decision
        assert [d.message for d in dry.diagnostics] == [d.message for d in live.diagnostics]

    def test_dry_run_symmetry_unusable_backup_directory(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path, tmp_path: Path
    ) -> None:
        """A backup directory below a regular file fails in both modes."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        policy = policy.model_copy(update={"backup_directory": str(blocker / "backups")})
        target = home / ".zshrc"
        target.write_text("before\n")

        dry = reconciler.reconcile(_resource(), policy.model_copy(update={"dry_run": True}))
        live = reconciler.reconcile(_resource(), policy)

        assert not dry.success
        assert not live.success
        assert "Cannot create backup directory" in (dry.error or "")
        assert [d.message for d in dry.diagnostics] == [d.message for d in live.diagnostics]
        assert target.read_text() == "before\n"
        assert not target.is_symlink()

    def test_backup_exists_before_mutation(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        """The backup is on disk by the time the deployer mutates the target."""
        target = home / ".zshrc"
        target.write_text("precious\n")
        seen: list[list[str]] = []

        from dotctl.core.deployer import Deployer

        original_apply = Deployer.apply

        def spy(self, prepared):
            backups = Path(policy.backup_directory)
            seen.append([p.read_text() for p in backups.iterdir()])
            return original_apply(self, prepared)

        with patch.object(Deployer, "apply", spy):
            outcome = reconciler.reconcile(_resource(), policy)

        assert outcome.success
        assert seen == [["precious\n"]]

    def test_backup_failure_aborts_before_mutation(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        target = home / ".zshrc"
        target.write_text("precious\n")

        with patch("dotctl.core.backup.shutil.copyfileobj", side_effect=OSError("disk full")):
            outcome = reconciler.reconcile(_resource(), policy)

        assert not outcome.success
        assert outcome.final_state == ReconcileState.FAILED
        assert "disk full" in (outcome.error or "")
        assert target.read_text() == "precious\n"

    def test_backups_disabled_is_fatal(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        target = home / ".zshrc"
        target.write_text("precious\n")

        outcome = reconciler.reconcile(_resource(backup=BackupPolicy(enabled=False)), policy)

        assert not outcome.success
        assert "backups are disabled" in (outcome.error or "")
        assert target.read_text() == "precious\n"


class TestGatesAndDiagnostics:
    """Tests for gate handling and recorded diagnostics."""

    def test_warn_if_missing_deploys_with_warning(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        resource = _resource(application=ApplicationGate(name="zsh", warn_if_missing=True))

        outcome = reconciler.reconcile(resource, policy)

        assert outcome.success
        assert not outcome.skipped
        assert (home / ".zshrc").is_symlink()
        assert any("deploying anyway" in d.message for d in outcome.warnings)

    def test_version_out_of_range_skips(
        self, linux: PlatformContext, make_detector, policy: GlobalPolicy, home: Path
    ) -> None:
        reconciler = Reconciler(linux, detector=make_detector({"git": "2.20.1"}))
        resource = _resource(
            application=ApplicationGate(name="git", min_version="2.30", skip_if_missing=True)
        )

        outcome = reconciler.reconcile(resource, policy)

        assert outcome.skipped
        assert outcome.detection is not None
        assert outcome.detection.version == "2.20.1"
        assert not (home / ".zshrc").exists()

    def test_detection_disabled_satisfies_gate(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        resource = _resource(application=ApplicationGate(name="git", skip_if_missing=True))

        outcome = reconciler.reconcile(
            resource, policy.model_copy(update={"detect_applications": False})
        )

        assert not outcome.skipped
        assert outcome.detection is not None
        assert outcome.detection.method == "disabled"
        assert (home / ".zshrc").is_symlink()

    def test_missing_source_fails(self, reconciler: Reconciler, policy: GlobalPolicy) -> None:
        outcome = reconciler.reconcile(_resource(source="zsh/nope"), policy)

        assert not outcome.success
        assert outcome.final_state == ReconcileState.FAILED
        assert outcome.errors[0].severity == Severity.ERROR
        assert "does not exist" in (outcome.error or "")

    def test_relative_source_without_root_fails(
        self, reconciler: Reconciler, policy: GlobalPolicy
    ) -> None:
        outcome = reconciler.reconcile(
            _resource(), policy.model_copy(update={"dotfiles_root": None})
        )

        assert not outcome.success
        assert "dotfiles root" in (outcome.error or "")

    def test_merge_falls_back_to_backup(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        target = home / ".zshrc"
        target.write_text("mine\n")

        outcome = reconciler.reconcile(
            _resource(strategy=Strategy.COPY, conflict_policy=ConflictPolicy.MERGE), policy
        )

        assert outcome.success
        assert outcome.decision == "backup_then_proceed"
        assert outcome.backup is not None
        assert any("merge" in d.message for d in outcome.warnings)
        assert target.read_text() == "export EDITOR=nvim\n"

    def test_prompt_policy_fails(self, reconciler: Reconciler, policy: GlobalPolicy, home: Path) -> None:
        (home / ".zshrc").write_text("mine\n")

        outcome = reconciler.reconcile(_resource(conflict_policy=ConflictPolicy.PROMPT), policy)

        assert not outcome.success
        assert "interactive" in (outcome.error or "")

    def test_template_uses_platform_overlay(
        self, reconciler: Reconciler, policy: GlobalPolicy, dotfiles: Path, home: Path
    ) -> None:
        (dotfiles / "shell.tmpl").write_text("{{ greeting }} from {{ system.platform }}\n")
        resource = _resource(
            id="shell",
            source="shell.tmpl",
            target="~/.shellrc",
            strategy=Strategy.TEMPLATE,
            template_vars={"greeting": "hello"},
            platform_vars={"linux": {"greeting": "moin"}},
        )

        outcome = reconciler.reconcile(resource, policy)

        assert outcome.success
        assert (home / ".shellrc").read_text() == "moin from linux\n"

    def test_file_mode_applied(self, reconciler: Reconciler, policy: GlobalPolicy, home: Path) -> None:
        outcome = reconciler.reconcile(
            _resource(strategy=Strategy.COPY, file_mode="0600"), policy
        )

        assert outcome.applied_mode == "0600"
        assert os.stat(home / ".zshrc").st_mode & 0o777 == 0o600

    def test_detection_method_bug_counts_as_missing(
        self, linux: PlatformContext, policy: GlobalPolicy, home: Path
    ) -> None:
        def broken(name: str, platform: PlatformContext) -> DetectionResult:
            raise RuntimeError("handler bug")

        reconciler = Reconciler(linux, detector=Detector(handlers={DetectionMethod.COMMAND: broken}))
        resource = _resource(
            application=ApplicationGate(
                name="zsh", skip_if_missing=True, detection_methods=["command"]
            )
        )

        outcome = reconciler.reconcile(resource, policy)

        assert outcome.success
        assert outcome.skipped
        assert outcome.detection is not None
        assert outcome.detection.method == "not_found"
        assert not (home / ".zshrc").exists()

    def test_template_runtime_error_fails(
        self, reconciler: Reconciler, policy: GlobalPolicy, dotfiles: Path, home: Path
    ) -> None:
        (dotfiles / "broken.tmpl").write_text("x={{ 1 / 0 }}\n")
        resource = _resource(
            id="broken", source="broken.tmpl", target="~/.brokenrc", strategy=Strategy.TEMPLATE
        )

        outcome = reconciler.reconcile(resource, policy)

        assert not outcome.success
        assert outcome.final_state == ReconcileState.FAILED
        assert "broken.tmpl" in (outcome.error or "")
        assert "ZeroDivisionError" in (outcome.error or "")
        assert not (home / ".brokenrc").exists()

    def test_mode_on_symlink_warns_about_source(
        self, reconciler: Reconciler, policy: GlobalPolicy, dotfiles: Path
    ) -> None:
        outcome = reconciler.reconcile(_resource(file_mode="0600"), policy)

        assert outcome.success
        assert any("symlinked resource" in d.message for d in outcome.warnings)
        assert os.stat(dotfiles / "zsh" / "zshrc").st_mode & 0o777 == 0o600

    def test_cancelled_before_mutation(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        token = CancellationToken()
        token.cancel()

        outcome = reconciler.reconcile(_resource(), policy, cancel=token)

        assert not outcome.success
        assert "Cancelled" in (outcome.error or "")
        assert not (home / ".zshrc").exists()


class TestReconcileAll:
    """Tests for concurrent reconciliation."""

    def test_preserves_order(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        resources = [
            _resource(),
            _resource(id="gitconfig", source="git/gitconfig", target="~/.gitconfig"),
            _resource(id="nvim", source="nvim", target="{{.config_dir}}/nvim"),
        ]

        outcomes = reconciler.reconcile_all(resources, policy, max_workers=3)

        assert [o.resource_id for o in outcomes] == ["zshrc", "gitconfig", "nvim"]
        assert all(o.success for o in outcomes)
        assert (home / ".config" / "nvim" / "init.lua").exists()

    def test_duplicate_targets_fail(
        self, reconciler: Reconciler, policy: GlobalPolicy, home: Path
    ) -> None:
        resources = [
            _resource(),
            _resource(id="other", source="git/gitconfig", target="{{.home_dir}}/.zshrc"),
            _resource(id="gitconfig", source="git/gitconfig", target="~/.gitconfig"),
        ]

        outcomes = reconciler.reconcile_all(resources, policy)

        assert [o.success for o in outcomes] == [False, False, True]
        assert "multiple resources" in (outcomes[0].error or "")
        assert not (home / ".zshrc").exists()

    def test_unexpected_error_stays_with_its_resource(
        self, linux: PlatformContext, policy: GlobalPolicy, home: Path
    ) -> None:
        def detect(name: str, methods: object, platform: PlatformContext) -> DetectionResult:
            if name == "broken":
                raise RuntimeError("detector exploded")
            return DetectionResult.found(DetectionMethod.COMMAND, version="1.0")

        detector = MagicMock(spec=Detector)
        detector.detect.side_effect = detect
        reconciler = Reconciler(linux, detector=detector)
        resources = [
            _resource(),
            _resource(
                id="gitconfig",
                source="git/gitconfig",
                target="~/.gitconfig",
                application=ApplicationGate(name="broken", skip_if_missing=True),
            ),
            _resource(
                id="nvim",
                source="nvim",
                target="{{.config_dir}}/nvim",
                application=ApplicationGate(name="nvim"),
            ),
        ]

        outcomes = reconciler.reconcile_all(resources, policy, max_workers=3)

        assert [o.success for o in outcomes] == [True, False, True]
        assert "RuntimeError: detector exploded" in (outcomes[1].error or "")
        assert outcomes[1].final_state == ReconcileState.FAILED
        assert (home / ".zshrc").is_symlink()
        assert (home / ".config" / "nvim" / "init.lua").exists()


class TestTransitions:
    """Tests for the state transition table."""

    def test_terminal_states(self) -> None:
        assert TRANSITIONS[ReconcileState.DONE] == frozenset()
        assert TRANSITIONS[ReconcileState.FAILED] == frozenset()

    def test_failed_reachable_from_every_working_state(self) -> None:
        for state, targets in TRANSITIONS.items():
            if state in (ReconcileState.DONE, ReconcileState.FAILED, ReconcileState.SKIPPED):
                continue
            assert ReconcileState.FAILED in targets, state
