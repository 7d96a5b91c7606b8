from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class CandidateEvent:
    """
    Inbound event as submitted by a client, before validation.
    Any field may be missing.
    """
    id: int = 0
    timestamp: Optional[datetime] = None
    flags: Tuple[int, ...] = field(default_factory=tuple)
    data: str = ""
