"""Channel index bookkeeping for streams whose wire format has no block indices."""

from dataclasses import dataclass, field


@dataclass
class ChannelAllocator:
    """Hands out stream channel indices without collisions.

    A channel asks for its preferred index; if another channel already holds
    it, the next free index above is used. Indices are never reassigned.
    """

    used: set[int] = field(default_factory=set)

    def claim(self, preferred: int) -> int:
        index = preferred
        while index in self.used:
            index += 1
        self.used.add(index)
        return index
