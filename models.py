"""
Data structures shared by the probe, classifier, remediation engine and monitor loop.

Probe results, diagnosis entries, alerts and remediation attempts are created once
and never mutated; the report containers only grow by appending.
"""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


def is_address_form(target: str) -> bool:
    """True if the target is a literal IP address rather than a hostname."""
    try:
        ipaddress.ip_address(target.strip())
        return True
    except ValueError:
        return False


@dataclass(frozen=True)
class ProbeResult:
    target: str
    reachable: bool
    latency_ms: Optional[float] = None
    attempts: int = 1
    attempts_failed: int = 0

    @property
    def recovered(self) -> bool:
        """Reachable, but only after at least one failed attempt."""
        return self.reachable and self.attempts_failed > 0

    def latency_text(self) -> str:
        return f"{self.latency_ms:g}" if self.latency_ms is not None else "N/A"


class DiagnosisCategory(Enum):
    ROUTE = "ROUTE"
    INTERFACE = "INTERFACE"
    GATEWAY = "GATEWAY"
    DNS = "DNS"
    HOSTS_FILE = "HOSTS_FILE"


@dataclass(frozen=True)
class DiagnosisEntry:
    category: DiagnosisCategory
    verdict: bool
    detail: str
    # Only meaningful for GATEWAY entries: False when no default gateway exists
    gateway_configured: bool = True

    def __str__(self) -> str:
        mark = "✅" if self.verdict else "❌"
        return f"{mark} {self.category.value}: {self.detail}"


@dataclass
class DiagnosisReport:
    """Ordered, append-only list of diagnosis entries for one failed target."""
    target: str
    address_form: bool
    entries: List[DiagnosisEntry] = field(default_factory=list)

    def add(self, entry: DiagnosisEntry) -> DiagnosisEntry:
        self.entries.append(entry)
        return entry

    def categories(self) -> List[DiagnosisCategory]:
        return [entry.category for entry in self.entries]

    def find(self, category: DiagnosisCategory) -> Optional[DiagnosisEntry]:
        for entry in self.entries:
            if entry.category is category:
                return entry
        return None

    @property
    def gateway_unreachable(self) -> bool:
        """Gateway-class failure: a gateway is configured but did not answer."""
        entry = self.find(DiagnosisCategory.GATEWAY)
        return entry is not None and entry.gateway_configured and not entry.verdict


@dataclass(frozen=True)
class AlertRecord:
    target: str
    timestamp: datetime
    reason: str


class ActionOutcome(Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class RemediationAttempt:
    """
    One executed remediation action.

    action_ok is whether the action itself ran; post_check is the health check that
    followed it (None when the action failed and verification was skipped). The
    outcome is SUCCESS only when the post-check passed.
    """
    action: str
    outcome: ActionOutcome
    action_ok: bool
    post_check: Optional[bool] = None


class RemediationStatus(Enum):
    HEALTHY = "HEALTHY"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ALREADY_RUNNING = "ALREADY_RUNNING"


@dataclass
class RemediationResult:
    status: RemediationStatus
    attempts: List[RemediationAttempt] = field(default_factory=list)
    successful_action: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.status in (RemediationStatus.HEALTHY, RemediationStatus.SUCCESS) else 1


class FlappingMode(Enum):
    NORMAL = "normal"
    FAILURE = "failure"


@dataclass(frozen=True)
class FlappingState:
    state: FlappingMode = FlappingMode.NORMAL
    last_minute: int = 0

    @property
    def last_bucket(self) -> int:
        return self.last_minute // 5

    def serialize(self) -> str:
        return f"{self.state.value}:{self.last_minute}"


class CycleStatus(Enum):
    HEALTHY = "HEALTHY"
    RECOVERED = "RECOVERED"
    DEGRADED = "DEGRADED"


@dataclass
class CycleReport:
    """Everything one monitor cycle observed and did."""
    targets: List[str]
    results: List[ProbeResult] = field(default_factory=list)
    alerts: List[AlertRecord] = field(default_factory=list)
    diagnoses: List[DiagnosisReport] = field(default_factory=list)
    remediation: Optional[RemediationResult] = None
    status: CycleStatus = CycleStatus.HEALTHY

    @property
    def down_targets(self) -> List[str]:
        return [r.target for r in self.results if not r.reachable]

    def summary(self) -> str:
        return " ".join(f"{'✅' if r.reachable else '❌'} {r.target}" for r in self.results)
