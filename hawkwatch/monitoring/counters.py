"""Named monotonic counters for coarse event bookkeeping."""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..utils.logging import get_logger


@dataclass
class Counter:
    """Current value of one named counter."""
    name: str
    value: Union[int, float]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'timestamp': self.timestamp.isoformat()
        }


class CounterRegistry:
    """Additive counters keyed by name. There is no decrement or reset."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.logger = get_logger(__name__)
        self._clock = clock or datetime.now
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, delta: Union[int, float] = 1) -> Union[int, float]:
        """Add ``delta`` to the counter, creating it if absent. Returns the new value."""
        if delta < 0:
            raise ValueError(f"Counter '{name}' can only increase, got delta {delta}")

        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(name=name, value=delta, timestamp=self._clock())
                self._counters[name] = counter
                self.logger.debug(f"Created counter '{name}'")
            else:
                counter.value += delta
                counter.timestamp = self._clock()
            return counter.value

    def get(self, name: str) -> Union[int, float]:
        """Current value, or 0 for an unknown name."""
        with self._lock:
            counter = self._counters.get(name)
            return counter.value if counter else 0

    def get_counters(self) -> List[Counter]:
        """Snapshot of every counter in creation order."""
        with self._lock:
            return [replace(counter) for counter in self._counters.values()]

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._counters
