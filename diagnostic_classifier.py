#!/usr/bin/env python3
"""
Diagnostic Classifier
Works out why an unreachable target is down: routing, interface, gateway or DNS.

Address targets get the network checks (route, interface, gateway). Hostnames get
the DNS checks (resolver fallback list, hosts file) and then the same interface and
gateway checks. Every verdict is written to the diagnosis log as a [DIAGNOSIS] line
and returned as a structured DiagnosisReport; callers gate remediation on
DiagnosisReport.gateway_unreachable rather than on log text.
"""

import logging

from checks.network_info import NetworkInspector
from models import DiagnosisCategory, DiagnosisEntry, DiagnosisReport, is_address_form

logger = logging.getLogger(__name__)

GATEWAY_PING_TIMEOUT = 2


class DiagnosticClassifier:
    """Runs ordered root-cause checks for a failed target"""

    def __init__(self, config, diagnosis_log, monitor_log=None, inspector=None):
        self.config = config
        self.diagnosis_log = diagnosis_log
        self.monitor_log = monitor_log
        self.inspector = inspector or NetworkInspector(config)
        self.dns_servers = list(config["dns_test_servers"])

    def _record(self, report, category, verdict, detail, **extra):
        entry = report.add(DiagnosisEntry(category, verdict, detail, **extra))
        self.diagnosis_log.diagnosis(f"  {entry}")
        return entry

    def _note(self, message):
        if self.monitor_log is not None:
            self.monitor_log.info(message)

    def classify(self, target):
        """Return the full ordered DiagnosisReport for target"""
        address_form = is_address_form(target)
        report = DiagnosisReport(target=target, address_form=address_form)

        if address_form:
            self._note("🔄 Switching to NETWORK diagnosis mode")
            self.diagnosis_log.diagnosis(f"NETWORK_DIAGNOSIS for {target}")
            self.check_route(report, target)
        else:
            self._note("🔄 Switching to DNS diagnosis mode")
            self.diagnosis_log.diagnosis(f"DNS_DIAGNOSIS for {target}")
            self.check_dns(report, target)
            self.check_hosts_file(report, target)

        self.check_interface(report)
        self.check_gateway(report)

        self._note(f"  📋 {'Network' if address_form else 'DNS'} diagnosis saved")
        logger.debug(f"Diagnosis for {target}: {[str(e) for e in report.entries]}")
        return report

    # ---- individual checks -------------------------------------------

    def check_route(self, report, target):
        if self.inspector.route_exists(target):
            return self._record(report, DiagnosisCategory.ROUTE, True, f"Route exists to {target}")
        return self._record(report, DiagnosisCategory.ROUTE, False, f"NO ROUTE to {target}")

    def check_interface(self, report):
        interfaces = self.inspector.interfaces()
        for name, is_up, mtu in interfaces:
            self.diagnosis_log.diagnosis(f"  {name} {'UP' if is_up else 'DOWN'} mtu {mtu}")
        if any(is_up for _, is_up, _ in interfaces):
            return self._record(report, DiagnosisCategory.INTERFACE, True,
                                "At least one network interface is UP")
        return self._record(report, DiagnosisCategory.INTERFACE, False,
                            "All network interfaces are DOWN")

    def check_gateway(self, report):
        gateway = self.inspector.default_gateway()
        if not gateway:
            return self._record(report, DiagnosisCategory.GATEWAY, False,
                                "No default gateway configured", gateway_configured=False)

        self.diagnosis_log.diagnosis(f"  Default gateway: {gateway}")
        reachable = self.inspector.is_reachable(gateway, count=1, timeout=GATEWAY_PING_TIMEOUT)
        for route in self.inspector.routing_table():
            self.diagnosis_log.diagnosis(f"  route: {route}")
        if reachable:
            return self._record(report, DiagnosisCategory.GATEWAY, True,
                                f"Gateway {gateway} is reachable")
        return self._record(report, DiagnosisCategory.GATEWAY, False,
                            f"Gateway {gateway} is UNREACHABLE")

    def check_dns(self, report, domain):
        servers = self.inspector.nameservers()
        if servers is None:
            self.diagnosis_log.diagnosis(f"  {self.inspector.resolv_conf} not found")
        else:
            self.diagnosis_log.diagnosis(f"  DNS servers configured: {', '.join(servers) or 'none'}")

        for server in self.dns_servers:
            if self.inspector.resolve(domain, server):
                return self._record(report, DiagnosisCategory.DNS, True,
                                    f"DNS resolution SUCCESS with {server}")
            logger.debug(f"Resolution of {domain} via {server} failed")
        return self._record(report, DiagnosisCategory.DNS, False,
                            "DNS resolution FAILED with all servers")

    def check_hosts_file(self, report, domain):
        if self.inspector.hosts_entry(domain):
            return self._record(report, DiagnosisCategory.HOSTS_FILE, True,
                                f"Found in {self.inspector.hosts_file}")
        return self._record(report, DiagnosisCategory.HOSTS_FILE, False,
                            f"Not found in {self.inspector.hosts_file}")
