#!/usr/bin/env python3
"""
Network Inspection
Reads routing, interface, gateway, resolver and hosts-file state of the local host.

Package Requirements:
- psutil for interface state and MTU
- iproute2 (ip), iputils-ping (ping) and dnsutils (nslookup)

All methods are read-only and never raise for ordinary failures: a missing tool,
a timeout or an unreadable file reads as "absent" / "unreachable".
"""
import logging
import re
from pathlib import Path

import psutil

from .system_commands import run_command

logger = logging.getLogger(__name__)

LATENCY_PATTERN = re.compile(r'time[=<]([0-9.]+)\s*ms')


def parse_latency(output):
    """Extract the round-trip time in ms from ping output, or None"""
    match = LATENCY_PATTERN.search(output or '')
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


class NetworkInspector:
    """Thin layer over ip/ping/nslookup and the resolver and hosts files"""

    def __init__(self, config, runner=run_command):
        self.config = config
        self.run = runner
        self.resolv_conf = Path(config["resolv_conf"])
        self.hosts_file = Path(config["hosts_file"])

    # ---- routing -------------------------------------------------------

    def route_exists(self, target):
        result = self.run(["ip", "route", "get", target], timeout=5)
        return result['success'] and bool(result['stdout'])

    def _default_route(self):
        result = self.run(["ip", "route", "show", "default"], timeout=5)
        if not result['success']:
            return None
        for line in result['stdout'].splitlines():
            if line.startswith('default'):
                return line.split()
        return None

    def default_gateway(self):
        """Gateway address of the first default route, or None"""
        fields = self._default_route()
        if fields and 'via' in fields:
            idx = fields.index('via')
            if idx + 1 < len(fields):
                return fields[idx + 1]
        return None

    def primary_interface(self):
        """Device of the first default route, or None"""
        fields = self._default_route()
        if fields and 'dev' in fields:
            idx = fields.index('dev')
            if idx + 1 < len(fields):
                return fields[idx + 1]
        return None

    def routing_table(self, limit=3):
        """First routes that mention a default or a next hop"""
        result = self.run(["ip", "route", "show"], timeout=5)
        if not result['success']:
            return []
        lines = [l.strip() for l in result['stdout'].splitlines()
                 if l.startswith('default') or ' via ' in l]
        return lines[:limit]

    # ---- interfaces ----------------------------------------------------

    def interfaces(self):
        """List of (name, is_up, mtu) for every non-loopback interface"""
        try:
            stats = psutil.net_if_stats()
        except (OSError, RuntimeError) as e:
            logger.warning(f"Could not read interface state: {e}")
            return []
        return [(name, st.isup, st.mtu) for name, st in sorted(stats.items())
                if name != 'lo' and not name.startswith('lo:')]

    def any_interface_up(self):
        return any(is_up for _, is_up, _ in self.interfaces())

    def get_mtu(self, interface):
        sys_path = Path("/sys/class/net") / interface / "mtu"
        try:
            return int(sys_path.read_text().strip())
        except (OSError, ValueError):
            pass
        for name, _, mtu in self.interfaces():
            if name == interface and mtu:
                return mtu
        return None

    def address_summary(self):
        result = self.run(["ip", "-br", "addr", "show"], timeout=5)
        return result['stdout'].splitlines() if result['success'] else []

    # ---- reachability --------------------------------------------------

    def ping(self, host, count=1, timeout=2):
        """Send count echo requests, each waiting up to timeout seconds"""
        wait = str(max(1, int(round(timeout))))
        return self.run(["ping", "-c", str(count), "-W", wait, host],
                        timeout=count * (int(wait) + 1) + 2)

    def is_reachable(self, host, count=1, timeout=2):
        return self.ping(host, count=count, timeout=timeout)['success']

    # ---- DNS -----------------------------------------------------------

    def resolve(self, domain, server=None, timeout=5):
        cmd = ["nslookup", domain]
        if server:
            cmd.append(server)
        result = self.run(cmd, timeout=timeout)
        return result['success']

    def nameservers(self):
        """Nameserver addresses configured in the resolver file"""
        try:
            text = self.resolv_conf.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Cannot read {self.resolv_conf}: {e}")
            return None
        servers = []
        for line in text.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0].lower() == 'nameserver':
                servers.append(parts[1])
        return servers

    def resolver_host(self):
        """First nameserver; on WSL2 this is the Windows host acting as gateway"""
        servers = self.nameservers()
        return servers[0] if servers else None

    def hosts_entry(self, name):
        """True if name is pinned as a hostname or alias in the hosts file"""
        try:
            text = self.hosts_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Cannot read {self.hosts_file}: {e}")
            return False
        wanted = name.strip().lower()
        for line in text.splitlines():
            fields = line.split('#', 1)[0].split()
            if len(fields) >= 2 and wanted in (f.lower() for f in fields[1:]):
                return True
        return False
