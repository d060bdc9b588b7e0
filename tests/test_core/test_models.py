"""
Тесты моделей данных.

Проверяем:
- валидацию ChangeRequest
- политику по операции и фильтр шагов
- сериализацию итогов и отчёта
"""

from datetime import datetime, timedelta

import pytest

from network_deployer.core.device import Device
from network_deployer.core.models import (
    ChangeOutcome,
    ChangePolicy,
    ChangeRequest,
    ConfigSnapshot,
    ExecutorState,
    FailureReason,
    Operation,
    OutcomeStatus,
    RunReport,
    SnapshotKind,
    SnapshotPurpose,
    StepFilter,
    TemplateSpec,
    VerificationCheck,
    sha256_hex,
)

T0 = datetime(2024, 1, 1, 10, 0, 0)


def device(name="sw1", **kwargs):
    return Device(name=name, host="10.0.0.1", **kwargs)


class TestChangeRequest:

    def test_devices_normalized_to_tuple(self):
        request = ChangeRequest(Operation.BULK_UPDATE, [device()], payload="x\n")

        assert isinstance(request.devices, tuple)
        assert request.device_names == ["sw1"]

    def test_duplicate_devices_rejected(self):
        with pytest.raises(ValueError, match="sw1"):
            ChangeRequest(Operation.BULK_UPDATE, [device(), device()], payload="x\n")

    @pytest.mark.parametrize("size", [0, -5])
    def test_invalid_batch_size(self, size):
        with pytest.raises(ValueError):
            ChangeRequest(Operation.BULK_UPDATE, [device()], payload="x\n", batch_size=size)

    def test_payload_required_except_backup(self):
        with pytest.raises(ValueError):
            ChangeRequest(Operation.BULK_UPDATE, [device()])

        assert ChangeRequest(Operation.BACKUP, [device()]).payload is None

    def test_payload_for_prefers_per_device(self):
        request = ChangeRequest(
            Operation.ROLLBACK,
            [device("sw1"), device("sw2")],
            payload="common\n",
            payloads={"sw2": "own\n"},
        )

        assert request.payload_for(device("sw1")) == "common\n"
        assert request.payload_for(device("sw2")) == "own\n"

    def test_request_is_immutable(self):
        request = ChangeRequest(Operation.BULK_UPDATE, [device()], payloads={"sw1": "x\n"})

        with pytest.raises(TypeError):
            request.payloads["sw1"] = "y\n"

    def test_with_devices(self):
        request = ChangeRequest(Operation.BULK_UPDATE, [device("a"), device("b")], payload="x\n")

        subset = request.with_devices([device("b")])

        assert subset.device_names == ["b"]
        assert subset.payload == "x\n"


class TestTemplateSpec:

    def test_template_by_role(self):
        spec = TemplateSpec(template_id="default.j2", by_role={"core": "core.j2"})

        assert spec.template_for(device(role="core")) == "core.j2"
        assert spec.template_for(device(role="access")) == "default.j2"
        assert spec.template_for(device()) == "default.j2"

    def test_device_vars_override_common(self):
        spec = TemplateSpec(variables={"site": "default", "vlan": 10})

        variables = spec.variables_for(device(vars={"site": "nyc"}))

        assert variables["site"] == "nyc"
        assert variables["vlan"] == 10
        assert variables["device"]["name"] == "sw1"


class TestChangePolicy:

    @pytest.mark.parametrize("operation,skip_if_compliant", [
        (Operation.ENFORCE_COMPLIANCE, True),
        (Operation.DEPLOY_TEMPLATES, False),
        (Operation.BULK_UPDATE, False),
    ])
    def test_update_operations(self, operation, skip_if_compliant):
        policy = ChangePolicy.for_operation(operation)

        assert policy.auto_rollback is True
        assert policy.verify is True
        assert policy.replace is False
        assert policy.skip_if_compliant is skip_if_compliant
        assert policy.backup_purpose == SnapshotPurpose.PRE_CHANGE

    def test_rollback_never_rolls_back(self):
        policy = ChangePolicy.for_operation(Operation.ROLLBACK)

        assert policy.auto_rollback is False
        assert policy.replace is True
        assert policy.backup_purpose == SnapshotPurpose.SAFETY

    def test_backup_operation(self):
        policy = ChangePolicy.for_operation(Operation.BACKUP)

        assert policy.verify is False
        assert policy.backup_purpose == SnapshotPurpose.MANUAL

    def test_skip_tags(self):
        steps = StepFilter(skip_tags=("verify", "rollback", "compliance"))

        policy = ChangePolicy.for_operation(Operation.ENFORCE_COMPLIANCE, steps)

        assert policy.verify is False
        assert policy.auto_rollback is False
        assert policy.skip_if_compliant is False

    def test_auto_rollback_disabled_by_config(self):
        policy = ChangePolicy.for_operation(Operation.BULK_UPDATE, auto_rollback=False)
        assert policy.auto_rollback is False


class TestStepFilter:

    def test_everything_enabled_by_default(self):
        steps = StepFilter()
        assert all(steps.enabled(tag) for tag in ("verify", "rollback", "compliance"))

    def test_tags_whitelist(self):
        steps = StepFilter(tags=("verify",))

        assert steps.enabled("verify")
        assert not steps.enabled("rollback")

    def test_mandatory_steps_cannot_be_skipped(self):
        steps = StepFilter(tags=("verify",), skip_tags=("backup", "safety"))

        assert steps.enabled("backup")
        assert steps.enabled("safety")


class TestSnapshot:

    def test_ref_and_checksum(self):
        content = "hostname sw1\n"
        snapshot = ConfigSnapshot(
            device="sw1",
            timestamp=T0,
            kind=SnapshotKind.RUNNING,
            content=content,
            checksum=sha256_hex(content),
            path="2024-01-01/sw1.running.100000000000.cfg",
        )

        assert snapshot.content_matches()
        assert snapshot.ref.to_dict() == {
            "device": "sw1",
            "timestamp": "2024-01-01T10:00:00",
            "kind": "running",
            "checksum": sha256_hex(content),
            "purpose": "manual",
            "path": "2024-01-01/sw1.running.100000000000.cfg",
        }

    def test_check_from_dict(self):
        check = VerificationCheck.from_dict({"command": "show ntp", "expect": "synchronized", "negate": 1})

        assert check.negate is True
        assert check.description == ""


class TestChangeOutcome:

    def test_not_attempted(self):
        outcome = ChangeOutcome.not_attempted("sw9", batch_index=3, error="halted")

        assert outcome.status == OutcomeStatus.SKIPPED_NOT_ATTEMPTED
        assert outcome.reason == FailureReason.HALTED
        assert outcome.attempts == 0

    def test_to_dict_minimal(self):
        outcome = ChangeOutcome(device="sw1", status=OutcomeStatus.SUCCEEDED)

        assert outcome.to_dict() == {
            "device": "sw1",
            "status": "succeeded",
            "changed": False,
            "attempts": 1,
        }

    def test_to_dict_failed_rollback(self):
        outcome = ChangeOutcome(
            device="sw1",
            status=OutcomeStatus.FAILED,
            reason=FailureReason.ROLLBACK_FAILED,
            error="boom",
            rollback_attempted_and_failed=True,
            started_at=T0,
            finished_at=T0 + timedelta(seconds=2.5),
        )

        data = outcome.to_dict()

        assert data["reason"] == "RollbackFailed"
        assert data["rollback_attempted_and_failed"] is True
        assert data["duration_seconds"] == 2.5
        assert outcome.needs_manual_intervention


class TestRunReport:

    def _report(self, *outcomes, **kwargs):
        return RunReport(
            run_id="r1",
            operation=Operation.BULK_UPDATE,
            outcomes=outcomes,
            started_at=T0,
            finished_at=T0 + timedelta(seconds=90),
            **kwargs,
        )

    def test_counts_include_all_statuses(self):
        report = self._report(
            ChangeOutcome(device="a", status=OutcomeStatus.SUCCEEDED),
            ChangeOutcome(device="b", status=OutcomeStatus.ROLLED_BACK),
        )

        assert report.counts == {
            "succeeded": 1,
            "failed": 0,
            "skipped-unreachable": 0,
            "rolled-back": 1,
            "skipped-not-attempted": 0,
        }
        assert report.total == 2
        assert report.elapsed_seconds == 90
        assert report.success is False

    def test_success_requires_no_halt(self):
        ok = ChangeOutcome(device="a", status=OutcomeStatus.SUCCEEDED)

        assert self._report(ok).success is True
        assert self._report(ok, halted=True).success is False

    def test_merge_keeps_input_order(self):
        base = self._report(
            ChangeOutcome(device="a", status=OutcomeStatus.SUCCEEDED),
            ChangeOutcome(device="c", status=OutcomeStatus.SUCCEEDED),
        )
        extra = [ChangeOutcome(device="b", status=OutcomeStatus.FAILED, reason=FailureReason.NO_SUCH_BACKUP)]

        merged = RunReport.merge(base, extra, ["a", "b", "c"])

        assert [o.device for o in merged.outcomes] == ["a", "b", "c"]
        assert merged.run_id == "r1"

    def test_to_dict(self):
        report = self._report(
            ChangeOutcome(device="a", status=OutcomeStatus.FAILED, rollback_attempted_and_failed=True),
            halted=True,
            halt_reason="threshold",
        )

        data = report.to_dict()

        assert data["operation"] == "bulk-update"
        assert data["manual_intervention"] == ["a"]
        assert data["halted"] is True
        assert data["devices"][0]["device"] == "a"


class TestExecutorState:

    def test_terminal_states(self):
        terminal = {s for s in ExecutorState if s.is_terminal}
        assert terminal == {
            ExecutorState.SUCCEEDED,
            ExecutorState.SKIPPED_UNREACHABLE,
            ExecutorState.FAILED,
            ExecutorState.ROLLED_BACK,
        }
