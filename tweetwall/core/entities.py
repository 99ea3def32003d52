from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EventPacket:
    event: str
    data: Any
