#!/usr/bin/env python3
"""
Auto-Remediation Engine
Safe, ordered recovery for gateway-class network faults.

Flow: take the lock, pre-check health, and if unhealthy run
renew_dhcp -> restart_interface -> fix_dns, re-checking health after each
action and stopping at the first verified recovery. A healthy network is never
touched. Only one remediation may run on the host at a time.
"""

import argparse
import fcntl
import logging
import os
import shutil
import sys
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from checks.network_info import NetworkInspector
from checks.system_commands import command_exists, privileged, run_command
from config_manager import ConfigurationManager
from event_logger import EventLogger, daily_log_path, prune_old_logs
from models import ActionOutcome, RemediationAttempt, RemediationResult, RemediationStatus

logger = logging.getLogger(__name__)

ACTION_ORDER = ("renew_dhcp", "restart_interface", "fix_dns")
LINK_SETTLE_DELAY = 2
DHCP_SETTLE_DELAY = 3


class RemediationState(Enum):
    IDLE = "IDLE"
    PRECHECK = "PRECHECK"
    HEALTHY = "HEALTHY"
    REMEDIATING = "REMEDIATING"
    ACTING = "ACTING"
    VERIFYING = "VERIFYING"
    SUCCESS = "SUCCESS"
    ALL_FAILED = "ALL_FAILED"


class LockHeldError(RuntimeError):
    """Another remediation run owns the lock file"""


class RemediationLock:
    """Advisory flock on a single token file; the holder's PID is written into it"""

    def __init__(self, path):
        self.path = Path(path)
        self._fd = None

    def acquire(self):
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise LockHeldError(f"{self.path} is held by another remediation")
        # The previous holder may have unlinked the file between our open and flock
        try:
            same_file = os.fstat(fd).st_ino == os.stat(self.path).st_ino
        except FileNotFoundError:
            same_file = False
        if not same_file:
            os.close(fd)
            raise LockHeldError(f"{self.path} was replaced while acquiring")
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd

    def release(self):
        if self._fd is None:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        finally:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
            self._fd = None

    @property
    def held(self):
        return self._fd is not None

    @contextmanager
    def hold(self):
        self.acquire()
        try:
            yield self
        finally:
            self.release()


class RemediationEngine:
    """Runs the ordered remediation sequence with verification between steps"""

    def __init__(self, config, log=None, inspector=None, runner=run_command,
                 sleep=time.sleep, tool_exists=command_exists):
        self.config = config
        self.log = log or EventLogger("remediation", daily_log_path(config["log_dir"], "remediation"), echo=True)
        self.run = runner
        self.inspector = inspector or NetworkInspector(config, runner=runner)
        self.sleep = sleep
        self.tool_exists = tool_exists
        self.lock = RemediationLock(config["lock_file"])
        self.stabilization_delay = config["stabilization_delay"]
        self.use_sudo = config["use_sudo"]
        self.state = RemediationState.IDLE
        self.actions = [(name, getattr(self, name)) for name in ACTION_ORDER]

    # ---- helpers -------------------------------------------------------

    def _sudo(self, cmd, timeout=15):
        result = self.run(privileged(cmd, self.use_sudo), timeout=timeout)
        output = result['stdout'] or result['stderr'] or result.get('error', '')
        if output:
            for line in output.splitlines():
                if "Can't" not in line:
                    self.log.info(f"    {line}")
        return result

    def _log_address_state(self):
        for line in self.inspector.address_summary():
            self.log.info(f"    {line}")

    def _gateway(self):
        gateway = self.inspector.default_gateway()
        if not gateway and self.config["gateway_from_resolver"]:
            gateway = self.inspector.resolver_host()
        return gateway

    # ---- health checks -------------------------------------------------

    def check_gateway(self):
        gateway = self._gateway()
        if not gateway:
            self.log.error("No gateway/host IP found")
            return False
        self.log.info(f"📡 Testing gateway: {gateway}")
        if self.inspector.is_reachable(gateway, count=2, timeout=2):
            self.log.info("✅ Gateway reachable")
            return True
        self.log.error("❌ Gateway unreachable")
        return False

    def check_internet(self):
        self.log.info("🌐 Testing internet connectivity...")
        if self.inspector.resolve(self.config["internet_test_domain"]):
            self.log.info("✅ DNS working")
        else:
            self.log.error("❌ DNS failed")
            return False
        if self.inspector.is_reachable(self.config["internet_test_ip"], count=2, timeout=3):
            self.log.info("✅ External connectivity OK")
            return True
        self.log.error("❌ No internet access")
        return False

    def is_healthy(self):
        """Composite check: gateway reachable and internet reachable"""
        return self.check_gateway() and self.check_internet()

    # ---- actions -------------------------------------------------------

    def renew_dhcp(self):
        self.log.action("🔄 Attempting DHCP renewal...")
        if self.tool_exists("dhclient"):
            self.log.action("🔧 Using dhclient...")
            self._sudo(["dhclient", "-r"], timeout=30)
            self.sleep(LINK_SETTLE_DELAY)
            self._sudo(["dhclient"], timeout=60)
            self.sleep(DHCP_SETTLE_DELAY)
            return True

        interface = self.inspector.primary_interface()
        if interface:
            self.log.action(f"🔧 Releasing IP on {interface}...")
            self._sudo(["ip", "addr", "flush", "dev", interface])
            self._sudo(["ip", "link", "set", interface, "down"])
            self.sleep(LINK_SETTLE_DELAY)
            self._sudo(["ip", "link", "set", interface, "up"])
            self.sleep(DHCP_SETTLE_DELAY)
            self.log.action(f"✅ IP released/renewed on {interface}")
            return True

        self.log.warn("⚠️ No DHCP method available")
        return False

    def restart_interface(self):
        interface = self.inspector.primary_interface()
        if not interface:
            self.log.error("❌ No interface found")
            return False

        self.log.action(f"🔄 Restarting interface: {interface}")
        original_mtu = self.inspector.get_mtu(interface) or 1500

        self._sudo(["ip", "link", "set", interface, "down"])
        self.sleep(LINK_SETTLE_DELAY)
        self._sudo(["ip", "link", "set", interface, "up"])
        self._sudo(["ip", "link", "set", interface, "mtu", str(original_mtu)])

        self.log.action(f"✅ Interface {interface} restarted (mtu {original_mtu})")
        self.sleep(DHCP_SETTLE_DELAY)
        return True

    def resolver_content(self):
        lines = ["# Auto-remediated by NOC"]
        lines += [f"nameserver {server}" for server in self.config["fallback_nameservers"]]
        lines.append("options timeout:2 attempts:2")
        return "\n".join(lines) + "\n"

    def fix_dns(self):
        self.log.action("🔧 Configuring DNS...")
        resolv = Path(self.config["resolv_conf"])
        content = self.resolver_content()

        if resolv.exists():
            backup = resolv.with_name(f"{resolv.name}.backup.{int(time.time())}")
            try:
                shutil.copy2(resolv, backup)
            except PermissionError:
                if not self._sudo(["cp", str(resolv), str(backup)])['success']:
                    self.log.error(f"❌ Could not back up {resolv}")
                    return False
            except OSError as e:
                self.log.error(f"❌ Could not back up {resolv}: {e}")
                return False
            self.log.action(f"💾 Backup saved: {backup}")

        try:
            # Replace a symlinked resolv.conf (systemd-resolved, WSL) with a real file
            if resolv.is_symlink():
                resolv.unlink()
            resolv.write_text(content, encoding="utf-8")
            os.chmod(resolv, 0o644)
        except PermissionError:
            result = self.run(privileged(["tee", str(resolv)], self.use_sudo),
                              timeout=15, input_text=content)
            if not result['success']:
                self.log.error(f"❌ Could not write {resolv}")
                return False
            self._sudo(["chmod", "644", str(resolv)])
        except OSError as e:
            self.log.error(f"❌ Could not write {resolv}: {e}")
            return False

        self.log.action(f"✅ DNS set to {', '.join(self.config['fallback_nameservers'])}")
        return True

    # ---- main flow -----------------------------------------------------

    def remediate(self):
        """Pre-check and run actions until one is verified; lock must be held"""
        attempts = []
        self.log.info("🛡️ === AUTO-REMEDIATION STARTED ===")
        self.log.info("📋 Pre-check: Current network state")
        self._log_address_state()

        self.state = RemediationState.PRECHECK
        if self.is_healthy():
            self.state = RemediationState.HEALTHY
            self.log.info("✅ Network healthy - no remediation needed")
            return RemediationResult(RemediationStatus.HEALTHY, attempts)

        self.state = RemediationState.REMEDIATING
        self.log.warn("🚨 Network issues detected - starting remediation")

        for name, action in self.actions:
            self.log.info(f"⚙️ Executing: {name}")
            self.state = RemediationState.ACTING
            if not action():
                self.log.error(f"❌ {name} failed")
                attempts.append(RemediationAttempt(name, ActionOutcome.FAILURE, action_ok=False))
                continue

            self.log.info(f"✅ {name} completed")
            self.sleep(self.stabilization_delay)
            self.state = RemediationState.VERIFYING
            if self.is_healthy():
                attempts.append(RemediationAttempt(name, ActionOutcome.SUCCESS, action_ok=True, post_check=True))
                self.state = RemediationState.SUCCESS
                self.log.info(f"🎉 Remediation SUCCESSFUL at step: {name}")
                self.log.info("✅ NETWORK RESTORED SUCCESSFULLY")
                self.log.info("📋 Post-remediation state:")
                self._log_address_state()
                return RemediationResult(RemediationStatus.SUCCESS, attempts, successful_action=name)
            attempts.append(RemediationAttempt(name, ActionOutcome.FAILURE, action_ok=True, post_check=False))

        self.state = RemediationState.ALL_FAILED
        self.log.error("❌ ALL REMEDIATION STEPS FAILED")
        self.log.info("🛠️ Manual intervention required")
        return RemediationResult(RemediationStatus.FAILED, attempts)

    def run_once(self):
        """Take the lock and remediate; never waits for a running remediation"""
        self.state = RemediationState.IDLE
        try:
            self.lock.acquire()
        except LockHeldError as e:
            logger.debug(str(e))
            self.log.error("Another remediation is running")
            return RemediationResult(RemediationStatus.ALREADY_RUNNING)
        except OSError as e:
            self.log.error(f"❌ Cannot open lock file {self.lock.path}: {e}")
            self.log.error("========== 🔴 REMEDIATION: FAILED ==========")
            return RemediationResult(RemediationStatus.FAILED)

        try:
            result = self.remediate()
        finally:
            self.lock.release()

        if result.status is RemediationStatus.FAILED:
            self.log.error("========== 🔴 REMEDIATION: FAILED ==========")
        else:
            self.log.info("========== 🟢 REMEDIATION: SUCCESS ==========")

        prune_old_logs(self.config["log_dir"], "remediation-*.log",
                       self.config["remediation_retention_days"])
        self.log.info(f"📂 Log saved: {self.log.path}")
        return result

    def get_status_summary(self):
        return {
            "state": self.state.value,
            "lock_file": str(self.lock.path),
            "lock_held": self.lock.held,
            "actions": list(ACTION_ORDER),
        }


def main(argv=None):
    parser = argparse.ArgumentParser(description="NOC auto-remediation for gateway faults")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--config", help="Path to a JSON config file")
    args = parser.parse_args(argv)

    manager = ConfigurationManager(env_file=args.env_file, config_file=args.config)
    logging.basicConfig(level=manager["log_level"].upper(),
                        format='%(asctime)s - %(levelname)s - %(message)s')
    manager.ensure_directories()

    engine = RemediationEngine(manager.config)
    engine.log.info("==============================")
    engine.log.info("🛠️ NOC AUTO-REMEDIATION")
    engine.log.info("==============================")
    try:
        result = engine.run_once()
    finally:
        engine.log.close()
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
