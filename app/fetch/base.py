from dataclasses import dataclass, field
from typing import Mapping, Optional

@dataclass
class FetchAttempt:
    method: str
    url: str
    status_code: int
    headers: Mapping[str, str]
    started_ms: float   # monotonic clock
    finished_ms: float  # monotonic clock

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

@dataclass
class ProbeResponse:
    attempt: FetchAttempt
    final_url: str
    redirects: list[str] = field(default_factory=list)
