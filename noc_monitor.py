#!/usr/bin/env python3
"""
NOC Monitor
Runs one check cycle over the configured targets: probe each one, raise an alert and
diagnose every target that is down, and hand gateway-class faults to the
remediation engine. Meant to be invoked by cron or a systemd timer.

Usage:
    noc-monitor                     # default targets
    noc-monitor 10.0.0.1 example.com
    noc-monitor --flapping-mode persistent --strict

Exit codes:
    0 - cycle completed (always, unless --strict)
    1 - --strict and at least one target is DOWN
    2 - invalid configuration
"""

import argparse
import logging
import sys
from datetime import datetime

from checks import probe
from config_manager import ConfigurationManager
from diagnostic_classifier import DiagnosticClassifier
from event_logger import MonitorSinks
from flapping_simulator import build_strategy, inject_targets
from models import AlertRecord, CycleReport, CycleStatus, RemediationStatus
from remediation_engine import RemediationEngine

logger = logging.getLogger(__name__)

SUMMARY_LINES = 6


class NocMonitor:
    """Orchestrates a single monitoring cycle"""

    def __init__(self, config, sinks=None, classifier=None, remediation_engine=None,
                 strategy=None, probe_fn=probe.check):
        self.config = config
        self.sinks = sinks or MonitorSinks(config)
        self.log = self.sinks.monitor
        self.classifier = classifier or DiagnosticClassifier(config, self.sinks.diagnosis, self.log)
        self._remediation_engine = remediation_engine
        self.strategy = strategy
        if self.strategy is None and config["flapping_enabled"]:
            self.strategy = build_strategy(config)
        self.probe = probe_fn

    @property
    def remediation_engine(self):
        # Built lazily: most cycles never need it
        if self._remediation_engine is None:
            self._remediation_engine = RemediationEngine(self.config)
        return self._remediation_engine

    def _apply_flapping(self, targets):
        if self.strategy is None:
            return list(targets)
        self.log.info(f"🧪 Flapping test: {self.strategy.name} mode (enabled)")
        cycle_targets = inject_targets(targets, self.strategy, self.config["synthetic_target"])
        if len(cycle_targets) > len(targets):
            self.log.info(f"{self.strategy.label} Adding synthetic failure target")
        self.log.info(f"Updated targets: {' '.join(cycle_targets)}")
        return cycle_targets

    def _run_remediation(self, report):
        self.log.info("  🚨 Gateway issue detected, triggering auto-remediation...")
        result = self.remediation_engine.run_once()
        report.remediation = result
        message = (f"  🛠️ Remediation finished: {result.status.value} "
                   f"(exit {result.exit_code}, {len(result.attempts)} action(s))")
        if result.status in (RemediationStatus.FAILED, RemediationStatus.ALREADY_RUNNING):
            self.log.error(message)
        else:
            self.log.info(message)
        if result.successful_action:
            self.log.info(f"  🎉 Recovered by: {result.successful_action}")
        return result

    def check_target(self, target, report):
        self.log.info(f"📡 Checking: {target}")
        result = self.probe(target, timeout=self.config["timeout"],
                            max_retries=self.config["max_retries"],
                            retry_delay=self.config["retry_delay"])
        report.results.append(result)

        if result.reachable:
            if result.recovered:
                self.log.info(f"  ✅ RECOVERED {target} - Latency: {result.latency_text()}ms "
                              f"(after {result.attempts_failed} attempts)")
            else:
                self.log.info(f"  ✅ UP {target} - Latency: {result.latency_text()}ms")
            return result

        self.log.error(f"  ❌ DOWN {target}")
        reason = f"{target} is DOWN (ping failed after {result.attempts} attempts)"
        report.alerts.append(AlertRecord(target=target, timestamp=datetime.now(), reason=reason))
        self.sinks.create_alert(reason)

        diagnosis = self.classifier.classify(target)
        report.diagnoses.append(diagnosis)

        if diagnosis.gateway_unreachable:
            if not self.config["auto_remediate"]:
                self.log.info("  🚨 Gateway issue detected, auto-remediation disabled")
            elif report.remediation is not None:
                self.log.info("  🚨 Gateway issue detected, remediation already ran this cycle")
            else:
                self._run_remediation(report)
        return result

    def _final_report(self, report):
        self.log.info("========== 📊 FINAL REPORT ==========")
        if not report.down_targets:
            if any(r.attempts_failed for r in report.results):
                report.status = CycleStatus.RECOVERED
                self.log.info("✅ STATUS: RECOVERED (transient issues detected)")
            else:
                report.status = CycleStatus.HEALTHY
                self.log.info("✅ STATUS: ALL SYSTEMS HEALTHY")
            return

        report.status = CycleStatus.DEGRADED
        self.log.error("❌ STATUS: DEGRADED - Check alerts & diagnosis")
        entries = [entry for d in report.diagnoses for entry in d.entries]
        if entries:
            self.log.info("🔍 Diagnosis summary:")
            for entry in entries[-SUMMARY_LINES:]:
                self.log.info(f"  {entry}")
        self.log.info(f"📋 Full diagnosis: {self.sinks.diagnosis.path}")
        self.log.info(f"🚨 Alerts: {self.sinks.alerts.path}")

    def run_cycle(self, targets=None):
        """Run one full check cycle and return its CycleReport"""
        base_targets = list(targets) if targets else list(self.config["targets"])

        self.log.info("========== 🛡️ NOC MONITOR STARTED ==========")
        self.log.info(f"Checking {len(base_targets)} targets")
        self.log.info(f"Targets: {' '.join(base_targets)}")

        cycle_targets = self._apply_flapping(base_targets)
        report = CycleReport(targets=cycle_targets)

        for target in cycle_targets:
            self.check_target(target, report)

        self._final_report(report)
        self.sinks.prune()

        self.log.info(f"📝 Summary: {report.summary()}")
        self.log.info(f"📂 Log saved to: {self.log.path}")
        self.log.info("========== 🛡️ MONITOR COMPLETE ==========")
        return report

    def close(self):
        self.sinks.close()
        if self._remediation_engine is not None:
            self._remediation_engine.log.close()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Host-local network health monitor")
    parser.add_argument("targets", nargs="*", help="IP addresses or hostnames to check")
    parser.add_argument("--flapping-mode", choices=["time", "random", "pattern", "persistent"],
                        help="Override the flapping test mode")
    parser.add_argument("--no-flapping", action="store_true", help="Disable synthetic failure injection")
    parser.add_argument("--no-remediation", action="store_true", help="Diagnose only, never remediate")
    parser.add_argument("--strict", action="store_true", help="Exit 1 when the cycle is DEGRADED")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--config", help="Path to a JSON config file")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    overrides = {}
    if args.flapping_mode:
        overrides["flapping_mode"] = args.flapping_mode
    if args.no_flapping:
        overrides["flapping_enabled"] = False
    if args.no_remediation:
        overrides["auto_remediate"] = False

    try:
        manager = ConfigurationManager(env_file=args.env_file, config_file=args.config, overrides=overrides)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=manager["log_level"].upper(),
                        format='%(asctime)s - %(levelname)s - %(message)s')
    manager.ensure_directories()

    monitor = NocMonitor(manager.config)
    try:
        report = monitor.run_cycle(args.targets)
    finally:
        monitor.close()

    if args.strict and report.status is CycleStatus.DEGRADED:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
