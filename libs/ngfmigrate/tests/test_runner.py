"""Tests for subprocess execution of migration steps."""

import subprocess

import pytest

from ngfmigrate import runner
from ngfmigrate.commands import Phase, Step
from ngfmigrate.runner import (
    CommandError,
    check_tools,
    kubectl_json,
    run_command,
    run_plan,
    run_step,
)


class FakeRun:
    """Records argv and returns canned results keyed by the tool name."""

    def __init__(self, returncodes=None, stdout="", stderr=""):
        self.calls = []
        self.returncodes = returncodes or {}
        self.stdout = stdout
        self.stderr = stderr

    def __call__(self, argv, **kwargs):
        self.calls.append(argv)
        code = self.returncodes.get(argv[0], 0)
        return subprocess.CompletedProcess(
            argv, code, stdout=self.stdout, stderr=self.stderr if code else "",
        )


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(runner.subprocess, "run", fake)
    return fake


def make_step(tool="kubectl", check=True):
    return Step(Phase.RESOURCES, f"run {tool}", [tool, "version"], check=check)


class TestCheckTools:
    def test_reports_missing(self, monkeypatch):
        monkeypatch.setattr(
            runner.shutil, "which", lambda tool: None if tool == "eksctl" else f"/usr/bin/{tool}",
        )
        assert check_tools(["kubectl", "eksctl", "helm"]) == ["eksctl"]


class TestRunCommand:
    def test_missing_executable(self, monkeypatch):
        def raise_missing(argv, **kwargs):
            raise FileNotFoundError(argv[0])

        monkeypatch.setattr(runner.subprocess, "run", raise_missing)
        with pytest.raises(CommandError) as exc:
            run_command(["eksctl", "version"])
        assert exc.value.returncode == 127
        assert "command not found" in str(exc.value)

    def test_timeout(self, monkeypatch):
        def raise_timeout(argv, **kwargs):
            raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

        monkeypatch.setattr(runner.subprocess, "run", raise_timeout)
        with pytest.raises(CommandError) as exc:
            run_command(["kubectl", "wait"], timeout=5)
        assert exc.value.returncode == 124
        assert "timed out after 5s" in exc.value.stderr


class TestRunStep:
    def test_dry_run_does_not_execute(self, fake_run):
        result = run_step(make_step(), dry_run=True)
        assert fake_run.calls == []
        assert result.returncode is None
        assert result.ok

    def test_success(self, fake_run):
        result = run_step(make_step())
        assert fake_run.calls == [["kubectl", "version"]]
        assert result.returncode == 0
        assert result.ok

    def test_checked_failure_raises(self, fake_run):
        fake_run.returncodes = {"kubectl": 1}
        fake_run.stderr = "connection refused"
        with pytest.raises(CommandError, match="connection refused"):
            run_step(make_step())

    def test_unchecked_failure_returns(self, fake_run):
        fake_run.returncodes = {"kubectl": 1}
        result = run_step(make_step(check=False))
        assert result.returncode == 1
        assert not result.ok


class TestRunPlan:
    def test_stops_on_first_failure(self, fake_run):
        fake_run.returncodes = {"helm": 1}
        steps = [make_step("eksctl"), make_step("helm"), make_step("kubectl")]
        with pytest.raises(CommandError):
            run_plan(steps)
        assert [c[0] for c in fake_run.calls] == ["eksctl", "helm"]

    def test_continue_on_error(self, fake_run):
        fake_run.returncodes = {"helm": 1}
        steps = [make_step("eksctl"), make_step("helm"), make_step("kubectl")]
        results = run_plan(steps, continue_on_error=True)

        assert [c[0] for c in fake_run.calls] == ["eksctl", "helm", "kubectl"]
        assert [r.ok for r in results] == [True, False, True]

    def test_dry_run(self, fake_run):
        results = run_plan([make_step("eksctl"), make_step("helm")], dry_run=True)
        assert fake_run.calls == []
        assert len(results) == 2


class TestKubectlJson:
    def test_appends_output_flag(self, fake_run):
        fake_run.stdout = '{"kind": "Gateway"}'
        assert kubectl_json(["get", "gateway", "gw"]) == '{"kind": "Gateway"}'
        assert fake_run.calls == [["kubectl", "get", "gateway", "gw", "-o", "json"]]

    def test_failure_raises(self, fake_run):
        fake_run.returncodes = {"kubectl": 1}
        fake_run.stderr = "NotFound"
        with pytest.raises(CommandError) as exc:
            kubectl_json(["get", "gateway", "gw"])
        assert exc.value.returncode == 1
