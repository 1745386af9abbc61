"""
Host-level network check primitives used by the NOC monitor.

This package contains the leaf checks the monitor and remediation engine build on:
- system_commands.py: subprocess wrapper, tool detection and sudo handling
- network_info.py: routing, interface, gateway, DNS and hosts-file inspection
- probe.py: single-target reachability probe with bounded retries and latency capture

Nothing in here writes log files; callers decide what gets recorded.

System Notes:
- Written for Linux hosts with iproute2 (ip), iputils-ping and nslookup installed
- WSL2 hosts usually point the resolver at the Windows host, which also acts as gateway
"""
