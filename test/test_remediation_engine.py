#!/usr/bin/env python3
"""
Remediation engine tests: pre-check idempotence, ordered actions with
verification, the single-run lock and the individual actions
"""

import os
import stat
from pathlib import Path
from unittest.mock import Mock

import pytest

from models import ActionOutcome, RemediationStatus
from remediation_engine import (
    ACTION_ORDER, LockHeldError, RemediationEngine, RemediationLock, RemediationState,
)


@pytest.fixture
def remediation_log(make_sink):
    return make_sink("remediation")


@pytest.fixture
def engine_factory(config, inspector, remediation_log, recorder):
    def _make(runner=None, tool_exists=lambda name: False):
        return RemediationEngine(config, log=remediation_log, inspector=inspector,
                                 runner=runner or recorder(), sleep=Mock(), tool_exists=tool_exists)
    return _make


def stub_actions(engine, results=(True, True, True)):
    mocks = {}
    for name, ok in zip(ACTION_ORDER, results):
        mocks[name] = Mock(return_value=ok)
    engine.actions = [(name, mocks[name]) for name in ACTION_ORDER]
    return mocks


def test_healthy_network_is_left_alone(engine_factory):
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(return_value=True)

    result = engine.run_once()

    assert result.status is RemediationStatus.HEALTHY
    assert result.attempts == []
    assert result.exit_code == 0
    assert engine.state is RemediationState.HEALTHY
    for action in actions.values():
        action.assert_not_called()


def test_stops_at_first_verified_success(engine_factory):
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(side_effect=[False, True])

    result = engine.run_once()

    assert result.status is RemediationStatus.SUCCESS
    assert result.successful_action == "renew_dhcp"
    assert [a.action for a in result.attempts] == ["renew_dhcp"]
    assert result.attempts[0].outcome is ActionOutcome.SUCCESS
    actions["restart_interface"].assert_not_called()
    actions["fix_dns"].assert_not_called()
    engine.sleep.assert_called_with(engine.stabilization_delay)


def test_second_action_recovers(engine_factory):
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(side_effect=[False, False, True])

    result = engine.run_once()

    assert result.status is RemediationStatus.SUCCESS
    assert [a.action for a in result.attempts] == ["renew_dhcp", "restart_interface"]
    assert [a.outcome for a in result.attempts] == [ActionOutcome.FAILURE, ActionOutcome.SUCCESS]
    assert result.attempts[0].post_check is False
    actions["fix_dns"].assert_not_called()


def test_total_failure_runs_every_action_once(engine_factory):
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(return_value=False)

    result = engine.run_once()

    assert result.status is RemediationStatus.FAILED
    assert result.exit_code == 1
    assert [a.action for a in result.attempts] == list(ACTION_ORDER)
    assert all(a.outcome is ActionOutcome.FAILURE for a in result.attempts)
    assert engine.state is RemediationState.ALL_FAILED
    for action in actions.values():
        action.assert_called_once()
    assert any("Manual intervention required" in line for line in engine.log.read_lines())


def test_failed_action_skips_verification(engine_factory):
    engine = engine_factory()
    stub_actions(engine, results=(False, True, True))
    engine.is_healthy = Mock(side_effect=[False, True])

    result = engine.run_once()

    assert result.attempts[0].action_ok is False
    assert result.attempts[0].post_check is None
    assert result.successful_action == "restart_interface"
    assert engine.is_healthy.call_count == 2


def test_lock_held_returns_immediately(engine_factory, config):
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(return_value=False)

    other = RemediationLock(config["lock_file"])
    other.acquire()
    try:
        before = config["lock_file"].read_text()
        result = engine.run_once()

        assert result.status is RemediationStatus.ALREADY_RUNNING
        assert result.attempts == []
        assert result.exit_code == 1
        engine.is_healthy.assert_not_called()
        for action in actions.values():
            action.assert_not_called()
        assert config["lock_file"].read_text() == before == f"{os.getpid()}\n"
        assert other.held
    finally:
        other.release()


def test_lock_released_after_run(engine_factory, config):
    engine = engine_factory()
    stub_actions(engine)
    engine.is_healthy = Mock(return_value=True)

    engine.run_once()

    assert not config["lock_file"].exists()
    assert not engine.lock.held


def test_lock_released_when_remediation_raises(engine_factory, config):
    engine = engine_factory()
    engine.is_healthy = Mock(side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        engine.run_once()

    assert not engine.lock.held
    lock = RemediationLock(config["lock_file"])
    with lock.hold():
        assert lock.held


def test_unopenable_lock_file_fails_without_acting(engine_factory, config):
    config["lock_file"] = config["base_dir"] / "missing-dir" / "noc.lock"
    engine = engine_factory()
    actions = stub_actions(engine)
    engine.is_healthy = Mock(return_value=False)

    result = engine.run_once()

    assert result.status is RemediationStatus.FAILED
    assert result.exit_code == 1
    assert result.attempts == []
    engine.is_healthy.assert_not_called()
    for action in actions.values():
        action.assert_not_called()
    assert any("[ERROR]" in line and "Cannot open lock file" in line
               for line in engine.log.read_lines())


def test_second_lock_on_same_file_fails(config):
    first = RemediationLock(config["lock_file"])
    second = RemediationLock(config["lock_file"])
    with first.hold():
        with pytest.raises(LockHeldError):
            second.acquire()
    assert not second.held


# ---- health checks ------------------------------------------------------

def test_health_needs_gateway_dns_and_external_ping(engine_factory, inspector):
    engine = engine_factory()
    assert engine.is_healthy()

    inspector.resolve.return_value = False
    assert not engine.is_healthy()

    inspector.resolve.return_value = True
    inspector.is_reachable.side_effect = lambda host, **kw: host != "8.8.8.8"
    assert not engine.is_healthy()


def test_gateway_falls_back_to_resolver_host(engine_factory, inspector):
    inspector.default_gateway.return_value = None
    engine = engine_factory()

    assert engine.check_gateway()
    inspector.is_reachable.assert_called_with("172.20.0.1", count=2, timeout=2)


def test_no_gateway_at_all_is_unhealthy(engine_factory, inspector):
    inspector.default_gateway.return_value = None
    inspector.resolver_host.return_value = None
    engine = engine_factory()

    assert not engine.check_gateway()


# ---- actions --------------------------------------------------------------

def test_renew_dhcp_prefers_dhclient(engine_factory, recorder):
    run = recorder()
    engine = engine_factory(runner=run, tool_exists=lambda name: name == "dhclient")

    assert engine.renew_dhcp()
    assert run.calls == [["dhclient", "-r"], ["dhclient"]]


def test_renew_dhcp_falls_back_to_interface_cycle(engine_factory, recorder):
    run = recorder()
    engine = engine_factory(runner=run)

    assert engine.renew_dhcp()
    assert run.calls == [
        ["ip", "addr", "flush", "dev", "eth0"],
        ["ip", "link", "set", "eth0", "down"],
        ["ip", "link", "set", "eth0", "up"],
    ]


def test_renew_dhcp_without_any_mechanism_is_soft_failure(engine_factory, inspector):
    inspector.primary_interface.return_value = None
    engine = engine_factory()

    assert engine.renew_dhcp() is False
    assert any("[WARN]" in line and "No DHCP method available" in line for line in engine.log.read_lines())


def test_restart_interface_restores_mtu(engine_factory, inspector, recorder):
    inspector.get_mtu.return_value = 1400
    run = recorder()
    engine = engine_factory(runner=run)

    assert engine.restart_interface()
    assert run.calls == [
        ["ip", "link", "set", "eth0", "down"],
        ["ip", "link", "set", "eth0", "up"],
        ["ip", "link", "set", "eth0", "mtu", "1400"],
    ]


def test_restart_interface_without_interface(engine_factory, inspector):
    inspector.primary_interface.return_value = None
    assert engine_factory().restart_interface() is False


def test_fix_dns_backs_up_and_rewrites_resolver(engine_factory, config):
    resolv = config["resolv_conf"]
    original = resolv.read_text()
    engine = engine_factory()

    assert engine.fix_dns()

    content = resolv.read_text()
    assert "nameserver 8.8.8.8\nnameserver 1.1.1.1\nnameserver 9.9.9.9\n" in content
    assert "options timeout:2 attempts:2" in content
    backups = list(resolv.parent.glob("resolv.conf.backup.*"))
    assert len(backups) == 1
    assert backups[0].read_text() == original
    assert stat.S_IMODE(resolv.stat().st_mode) == 0o644


def test_fix_dns_falls_back_to_privileged_tee(engine_factory, config, recorder, monkeypatch):
    resolv = config["resolv_conf"]
    original = resolv.read_text()
    real_write_text = Path.write_text

    def write_text(self, *args, **kwargs):
        if self == resolv:
            raise PermissionError(13, "Permission denied", str(self))
        return real_write_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "write_text", write_text)
    run = recorder()
    engine = engine_factory(runner=run)

    assert engine.fix_dns()

    assert run.calls == [["tee", str(resolv)], ["chmod", "644", str(resolv)]]
    assert run.inputs[0] == engine.resolver_content()
    assert resolv.read_text() == original


def test_fix_dns_tee_failure_is_reported(engine_factory, config, recorder, monkeypatch):
    resolv = config["resolv_conf"]
    real_write_text = Path.write_text

    def write_text(self, *args, **kwargs):
        if self == resolv:
            raise PermissionError(13, "Permission denied", str(self))
        return real_write_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "write_text", write_text)
    denied = {"success": False, "stdout": "", "stderr": "tee: permission denied", "returncode": 1}
    run = recorder(responses={"tee": denied})
    engine = engine_factory(runner=run)

    assert engine.fix_dns() is False
    assert run.calls == [["tee", str(resolv)]]


def test_fix_dns_replaces_symlinked_resolver(engine_factory, config, tmp_path):
    resolv = config["resolv_conf"]
    managed = tmp_path / "run" / "stub-resolv.conf"
    managed.parent.mkdir()
    managed.write_text("nameserver 127.0.0.53\n")
    resolv.unlink()
    resolv.symlink_to(managed)
    engine = engine_factory()

    assert engine.fix_dns()

    assert not resolv.is_symlink()
    assert resolv.read_text() == engine.resolver_content()
    assert managed.read_text() == "nameserver 127.0.0.53\n"
    backups = list(resolv.parent.glob("resolv.conf.backup.*"))
    assert [b.read_text() for b in backups] == ["nameserver 127.0.0.53\n"]


def test_action_order_is_fixed():
    assert ACTION_ORDER == ("renew_dhcp", "restart_interface", "fix_dns")
