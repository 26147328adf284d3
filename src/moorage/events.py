"""
Engine event records
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Event:
    """One line of the ``/events`` stream"""
    type: str
    action: str
    actor_id: str = ''
    attributes: Dict[str, str] = field(default_factory=dict)
    scope: Optional[str] = None
    time_nano: int = 0

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.time_nano / 1e9, tz=timezone.utc)

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get('name')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Event':
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")
        actor = data.get('Actor') or {}
        time_nano = data.get('timeNano')
        if time_nano is None:
            time_nano = int(data.get('time', 0)) * 1_000_000_000
        return cls(
            type=data.get('Type') or data.get('type', ''),
            action=data.get('Action') or data.get('status', ''),
            actor_id=actor.get('ID') or data.get('id', ''),
            attributes=actor.get('Attributes') or {},
            scope=data.get('scope'),
            time_nano=int(time_nano),
        )
