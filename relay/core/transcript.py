from __future__ import annotations

"""Server-side conversation memory.

One transcript is shared by every caller of the process. It lives only in
memory and is lost on restart. All reads and writes go through the lock so
concurrent request handlers cannot interleave or drop appends.
"""

from dataclasses import dataclass
from threading import Lock
from typing import List, Optional, Tuple

from relay.core.models import Message
from relay.core.prompt import SYSTEM_PROMPT


def _initial_messages() -> List[Message]:
    return [Message(role="system", content=SYSTEM_PROMPT)]


@dataclass(frozen=True)
class TranscriptSnapshot:
    messages: Tuple[Message, ...]
    generation: int


class Transcript:
    def __init__(self) -> None:
        self._lock = Lock()
        self._messages: List[Message] = _initial_messages()
        # Bumped on every reset so in-flight exchanges can tell they are stale.
        self._generation = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def snapshot(self) -> TranscriptSnapshot:
        with self._lock:
            return TranscriptSnapshot(tuple(self._messages), self._generation)

    def append(self, *messages: Message, generation: Optional[int] = None) -> bool:
        """Append ``messages`` as one atomic block.

        When ``generation`` is given and a reset happened since it was read,
        nothing is appended and False is returned.
        """
        for message in messages:
            if message.role == "system":
                raise ValueError("Only the initial message may have the system role")
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._messages.extend(messages)
            return True

    def reset(self) -> None:
        with self._lock:
            self._messages = _initial_messages()
            self._generation += 1
