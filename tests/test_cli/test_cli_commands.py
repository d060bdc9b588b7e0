"""
Тесты CLI: парсер, вспомогательные функции и команды в dry-run.

Устройства не трогаются: dry-run строит план без драйвера,
list-backups и verify-backups работают только с хранилищем.
"""

import json
import logging
import signal
from argparse import Namespace
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from network_deployer.backup import BackupStore
from network_deployer.cli import main, setup_parser
from network_deployer.cli.utils import (
    EXIT_FAILED,
    EXIT_MANUAL_INTERVENTION,
    EXIT_OK,
    EXIT_USAGE,
    build_orchestrator,
    cancel_on_sigint,
    exit_code_for,
    get_batch_size,
    get_step_filter,
    load_checks,
    parse_checks,
    parse_tags,
)
from network_deployer.core.config_schema import AppConfig
from network_deployer.core.exceptions import ConfigError
from network_deployer.core.models import (
    ChangeOutcome,
    FailureReason,
    Operation,
    OutcomeStatus,
    RunReport,
    SnapshotKind,
)

INVENTORY = """
devices:
  - name: sw1
    host: 10.0.0.1
    role: access
    groups:
      location: nyc
  - name: sw2
    host: 10.0.0.2
    role: access
    groups:
      location: nyc
  - name: rtr1
    host: 10.0.0.254
    role: core
    groups:
      location: tokyo
"""


@pytest.fixture(autouse=True)
def restore_root_logging():
    """main() перенастраивает корневой логгер, возвращаем как было."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """config.yaml, инвентарь и шаблоны во временной папке."""
    monkeypatch.chdir(tmp_path)
    for name in ("DEPLOYER_BACKUP_DIR", "DEPLOYER_TEMPLATES_DIR", "DEPLOYER_OUTPUT_DIR", "DEPLOYER_INVENTORY"):
        monkeypatch.delenv(name, raising=False)

    (tmp_path / "inventory.yaml").write_text(INVENTORY, encoding="utf-8")
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "access.j2").write_text(
        "hostname {{ device.name }}\nsnmp-server location {{ site }}\n",
        encoding="utf-8",
    )
    (tmp_path / "config.yaml").write_text(
        "inventory_file: inventory.yaml\n"
        "output:\n"
        "  output_folder: out\n"
        "backup:\n"
        "  root: backups\n"
        "templates:\n"
        "  dir: templates\n"
        "logging:\n"
        "  console: false\n",
        encoding="utf-8",
    )
    return tmp_path


def run_cli(workspace, *argv):
    return main(["-c", str(workspace / "config.yaml"), *argv])


def run_dir(workspace):
    runs = sorted((workspace / "out").glob("run_*"))
    assert runs, "папка запуска не создана"
    return runs[-1]


class TestParser:

    @pytest.mark.parametrize("command", [
        "enforce-compliance", "deploy-templates", "bulk-update",
        "backup", "rollback", "list-backups", "verify-backups",
    ])
    def test_subcommands_registered(self, command):
        parser = setup_parser()
        choices = parser._subparsers._group_actions[0].choices
        assert command in choices

    def test_rollback_requires_devices(self):
        with pytest.raises(SystemExit):
            setup_parser().parse_args(["rollback", "--restore-point", "latest"])

    def test_rollback_target_alias(self):
        args = setup_parser().parse_args(["rollback", "-t", "sw1,sw2"])

        assert args.devices == "sw1,sw2"
        assert args.restore_point == "latest"

    def test_run_options(self):
        args = setup_parser().parse_args([
            "bulk-update", "--config-file", "snmp.cfg",
            "--batch-size", "7", "--halt-threshold", "0.5", "--skip-tags", "verify", "--dry-run",
        ])

        assert args.batch_size == 7
        assert args.halt_threshold == 0.5
        assert args.skip_tags == "verify"
        assert args.dry_run is True
        assert args.target == "all"


class TestChecksParsing:

    def test_list_and_mapping(self):
        items = [{"command": "show ntp", "expect": "synchronized"}]

        assert parse_checks(items)[0].command == "show ntp"
        assert parse_checks({"checks": items})[0].expect == "synchronized"
        assert parse_checks(None) == ()

    @pytest.mark.parametrize("data", [
        "show ntp",
        [{"command": "show ntp"}],
        ["show ntp"],
    ])
    def test_invalid(self, data):
        with pytest.raises(ConfigError):
            parse_checks(data, source="checks.yaml")

    def test_load_checks_from_file(self, tmp_path):
        path = tmp_path / "checks.yaml"
        path.write_text(
            "checks:\n  - command: show logging\n    expect: '%SYS-'\n    negate: true\n",
            encoding="utf-8",
        )

        checks = load_checks(str(path))

        assert len(checks) == 1
        assert checks[0].negate is True
        assert load_checks(None) == ()

    def test_load_checks_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="не найден"):
            load_checks(str(tmp_path / "absent.yaml"))


class TestRunOptions:

    def test_parse_tags(self):
        assert parse_tags("verify, rollback") == ("verify", "rollback")
        assert parse_tags(None) == ()

    def test_unknown_tag(self):
        with pytest.raises(ConfigError, match="deploy"):
            parse_tags("verify,deploy")

    def test_mandatory_skip_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            steps = get_step_filter(Namespace(tags=None, skip_tags="backup,verify"))

        assert steps.enabled("backup")
        assert not steps.enabled("verify")
        assert "нельзя пропустить" in caplog.text

    def test_batch_size(self):
        settings = AppConfig()

        assert get_batch_size(Namespace(batch_size=None), settings, Operation.ROLLBACK) == 5
        assert get_batch_size(Namespace(batch_size=3), settings, Operation.ROLLBACK) == 3
        with pytest.raises(ConfigError):
            get_batch_size(Namespace(batch_size=0), settings, Operation.BACKUP)

    def test_halt_threshold(self):
        settings = AppConfig()

        orchestrator = build_orchestrator(Namespace(halt_threshold=None), settings, MagicMock())
        assert orchestrator.halt_threshold == 0.2

        with pytest.raises(ConfigError, match="halt-threshold"):
            build_orchestrator(Namespace(halt_threshold=1.5), settings, MagicMock())


class TestExitCodes:

    def _report(self, *outcomes, halted=False):
        now = datetime(2024, 1, 1)
        return RunReport(
            run_id="r1",
            operation=Operation.BULK_UPDATE,
            outcomes=outcomes,
            started_at=now,
            finished_at=now,
            halted=halted,
        )

    def test_all_succeeded(self):
        report = self._report(ChangeOutcome(device="sw1", status=OutcomeStatus.SUCCEEDED))
        assert exit_code_for(report) == EXIT_OK

    def test_rolled_back_or_halted(self):
        rolled_back = ChangeOutcome(device="sw1", status=OutcomeStatus.ROLLED_BACK)
        ok = ChangeOutcome(device="sw2", status=OutcomeStatus.SUCCEEDED)

        assert exit_code_for(self._report(rolled_back)) == EXIT_FAILED
        assert exit_code_for(self._report(ok, halted=True)) == EXIT_FAILED

    def test_manual_intervention(self):
        broken = ChangeOutcome(
            device="sw1",
            status=OutcomeStatus.FAILED,
            reason=FailureReason.ROLLBACK_FAILED,
            rollback_attempted_and_failed=True,
        )
        assert exit_code_for(self._report(broken)) == EXIT_MANUAL_INTERVENTION


class TestCancelOnSigint:

    def test_handler_installed_and_restored(self):
        orchestrator = MagicMock()
        previous = signal.getsignal(signal.SIGINT)

        with cancel_on_sigint(orchestrator):
            handler = signal.getsignal(signal.SIGINT)
            assert handler is not previous
            handler(signal.SIGINT, None)

        orchestrator.cancel.assert_called_once()
        assert signal.getsignal(signal.SIGINT) is previous


class TestMainDryRun:

    def test_bulk_update_plan(self, workspace):
        (workspace / "snmp.cfg").write_text("snmp-server community public RO\n", encoding="utf-8")

        code = run_cli(
            workspace, "bulk-update", "--config-file", "snmp.cfg",
            "--target", "nyc", "--batch-size", "1", "--dry-run",
        )

        assert code == EXIT_OK
        plan = json.loads((run_dir(workspace) / "plan.json").read_text(encoding="utf-8"))
        assert plan["operation"] == "bulk-update"
        assert [[d["device"] for d in batch] for batch in plan["batches"]] == [["sw1"], ["sw2"]]
        assert (run_dir(workspace) / "plan.txt").exists()
        assert not (workspace / "backups").exists() or not any((workspace / "backups").iterdir())

    def test_deploy_templates_render_error(self, workspace):
        code = run_cli(
            workspace, "deploy-templates", "--template", "access.j2", "--target", "nyc", "--dry-run",
        )

        assert code == EXIT_FAILED
        plan = json.loads((run_dir(workspace) / "plan.json").read_text(encoding="utf-8"))
        assert plan["errors"] == 2

    def test_deploy_templates_with_vars(self, workspace):
        (workspace / "vars.yaml").write_text("site: NYC-DC1\n", encoding="utf-8")

        code = run_cli(
            workspace, "deploy-templates", "--template", "access.j2",
            "--vars", "vars.yaml", "--target", "sw1", "--dry-run",
        )

        assert code == EXIT_OK
        plan = json.loads((run_dir(workspace) / "plan.json").read_text(encoding="utf-8"))
        assert plan["batches"][0][0]["payload"] == "hostname sw1\nsnmp-server location NYC-DC1\n"

    def test_deploy_templates_without_template(self, workspace):
        assert run_cli(workspace, "deploy-templates", "--dry-run") == EXIT_USAGE

    def test_empty_bulk_file(self, workspace):
        (workspace / "empty.cfg").write_text("\n", encoding="utf-8")

        assert run_cli(workspace, "bulk-update", "--config-file", "empty.cfg", "--dry-run") == EXIT_USAGE

    def test_missing_inventory(self, workspace):
        code = main([
            "-c", str(workspace / "config.yaml"), "-i", str(workspace / "absent.yaml"),
            "backup", "--dry-run",
        ])
        assert code == EXIT_USAGE

    def test_unknown_target(self, workspace):
        assert run_cli(workspace, "backup", "--target", "london", "--dry-run") == EXIT_USAGE

    def test_invalid_config(self, workspace):
        bad = workspace / "bad.yaml"
        bad.write_text("rollout:\n  halt_threshold: 3\n", encoding="utf-8")

        assert main(["-c", str(bad), "backup", "--dry-run"]) == EXIT_USAGE

    def test_no_command(self, capsys):
        assert main([]) == EXIT_USAGE

    def test_run_log_written(self, workspace):
        run_cli(workspace, "backup", "--dry-run")

        text = (run_dir(workspace) / "run.log").read_text(encoding="utf-8")
        assert "Run started (command=backup, dry_run=True)" in text

    def test_rollback_plan(self, workspace):
        store = BackupStore(workspace / "backups")
        store.save("sw1", SnapshotKind.RUNNING, "hostname sw1\n", timestamp=datetime(2024, 1, 1, 3, 0, 0))

        code = run_cli(workspace, "rollback", "--devices", "sw1,sw2", "--restore-point", "2024-01-01", "--dry-run")

        assert code == EXIT_FAILED
        plan = json.loads((run_dir(workspace) / "plan.json").read_text(encoding="utf-8"))
        assert plan["operation"] == "rollback"
        items = {d["device"]: d for batch in plan["batches"] for d in batch}
        assert items["sw1"]["payload"] == "hostname sw1\n"
        assert "error" in items["sw2"]


class TestBackupCommands:

    @pytest.fixture
    def saved(self, workspace):
        store = BackupStore(workspace / "backups")
        store.save("sw1", SnapshotKind.RUNNING, "hostname sw1\n", timestamp=datetime(2024, 1, 1, 3, 0, 0))
        store.save("sw2", SnapshotKind.RUNNING, "hostname sw2\n", timestamp=datetime(2024, 1, 1, 3, 0, 1))
        store.save("sw2", SnapshotKind.STARTUP, "hostname sw2\n", timestamp=datetime(2024, 1, 1, 3, 0, 2))
        return store

    def test_list_backups(self, workspace, saved, capsys):
        code = run_cli(workspace, "list-backups")

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "sw1" in out and "sw2" in out
        assert "startup" not in out

    def test_list_backups_filters(self, workspace, saved, capsys):
        run_cli(workspace, "list-backups", "--device", "sw2", "--kind", "all")

        lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith("sw")]
        assert len(lines) == 2
        assert all(line.startswith("sw2") for line in lines)

    def test_verify_clean_store(self, workspace, saved):
        assert run_cli(workspace, "verify-backups") == EXIT_OK

        data = json.loads((run_dir(workspace) / "integrity.json").read_text(encoding="utf-8"))
        assert data["issues"] == []

    def test_verify_tampered_store(self, workspace, saved):
        ref = saved.resolve("sw1", "latest")
        (saved.root / ref.path).write_text("hostname evil\n", encoding="utf-8")

        assert run_cli(workspace, "verify-backups") == EXIT_FAILED

        data = json.loads((run_dir(workspace) / "integrity.json").read_text(encoding="utf-8"))
        assert [issue["device"] for issue in data["issues"]] == ["sw1"]
