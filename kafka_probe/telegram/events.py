from dataclasses import dataclass, field
from typing import List, Optional

from ..models import HealthVerdict


@dataclass
class VerdictReport:
    client_id: str
    brokers: str
    healthy: bool
    finished_at: str
    topic_count: int = 0
    failed_layers: List[str] = field(default_factory=list)
    hypotheses: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @classmethod
    def from_verdict(cls, verdict: HealthVerdict, client_id: str, brokers: str, finished_at: str) -> "VerdictReport":
        return cls(
            client_id=client_id,
            brokers=brokers,
            healthy=verdict.healthy,
            finished_at=finished_at,
            topic_count=len(verdict.topics),
            failed_layers=[layer.value for layer in verdict.failed_layers],
            hypotheses=sorted(h.value for h in verdict.hypotheses),
            error_message=verdict.error.message if verdict.error else None,
        )
