from dataclasses import dataclass
from typing import Any


@dataclass
class ConnectionEvent:
    status: str  # "disconnected", "connecting", "connected"
    reason: Any | None = None
