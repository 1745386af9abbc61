"""
Shared fixtures for the NOC monitor tests.
No test here runs a real network or privileged command.
"""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add the project root to the path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from checks.network_info import NetworkInspector  # noqa: E402
from config_manager import load_config  # noqa: E402
from event_logger import EventLogger  # noqa: E402


def ok(stdout=""):
    return {'success': True, 'stdout': stdout, 'stderr': '', 'returncode': 0}


def fail(stderr=""):
    return {'success': False, 'stdout': '', 'stderr': stderr, 'returncode': 1}


class CommandRecorder:
    """Stands in for run_command: records argv lists, answers from a table"""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default or ok()
        self.calls = []
        self.inputs = []

    def __call__(self, cmd, timeout=10, input_text=None):
        self.calls.append(list(cmd))
        self.inputs.append(input_text)
        key = " ".join(cmd)
        for prefix, response in self.responses.items():
            if key.startswith(prefix):
                return response(cmd) if callable(response) else response
        return self.default


@pytest.fixture
def recorder():
    return CommandRecorder


@pytest.fixture
def config(tmp_path):
    resolv = tmp_path / "resolv.conf"
    resolv.write_text("# generated\nnameserver 172.20.0.1\n")
    hosts = tmp_path / "hosts"
    hosts.write_text("127.0.0.1 localhost\n10.0.0.5 intranet.local intranet  # pinned\n")
    return load_config(
        base_dir=tmp_path,
        lock_file=tmp_path / "noc-remediation.lock",
        resolv_conf=resolv,
        hosts_file=hosts,
        retry_delay=0,
        stabilization_delay=0,
        flapping_enabled=False,
        use_sudo=False,
        auto_remediate=True,
    )


@pytest.fixture
def inspector(config):
    """A NetworkInspector double describing a healthy host"""
    fake = Mock(spec=NetworkInspector)
    fake.resolv_conf = config["resolv_conf"]
    fake.hosts_file = config["hosts_file"]
    fake.route_exists.return_value = True
    fake.interfaces.return_value = [("eth0", True, 1500)]
    fake.any_interface_up.return_value = True
    fake.default_gateway.return_value = "172.20.0.1"
    fake.primary_interface.return_value = "eth0"
    fake.routing_table.return_value = ["default via 172.20.0.1 dev eth0"]
    fake.is_reachable.return_value = True
    fake.resolve.return_value = True
    fake.nameservers.return_value = ["172.20.0.1"]
    fake.resolver_host.return_value = "172.20.0.1"
    fake.hosts_entry.return_value = False
    fake.get_mtu.return_value = 1500
    fake.address_summary.return_value = ["eth0 UP 172.20.0.2/20"]
    return fake


@pytest.fixture
def make_sink(tmp_path):
    sinks = []

    def _make(name):
        sink = EventLogger(name, tmp_path / "sinks" / f"{name}.log")
        sinks.append(sink)
        return sink

    yield _make
    for sink in sinks:
        sink.close()
