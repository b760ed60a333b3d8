"""Bounded buffer of recently seen event ids."""

from collections import OrderedDict


class DedupBuffer:
    """Remembers the last ``capacity`` message ids, evicting the oldest."""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def check_and_add(self, message_id: str) -> bool:
        """Record *message_id*; return True if it had already been seen."""
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return False

    def clear(self) -> None:
        self._seen.clear()
