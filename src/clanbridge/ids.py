"""Summary: Identifier generation for new remote store records.

Importance: New notifications, messages, and conversations need keys before they are written.
Alternatives: POST to the remote store and let it assign push ids.
"""

from __future__ import annotations

import itertools
import secrets
import time
from typing import Callable


class IdGenerator:
    """Summary: Builds record keys from a timestamp, a process counter, and random bits.

    Importance: The counter rules out collisions within one process and 96 random bits make
    cross-process collisions negligible, while the timestamp keeps keys roughly time ordered.
    Alternatives: Use uuid4 and lose time ordering of keys.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._counter = itertools.count()

    def new_id(self, prefix: str) -> str:
        """Summary: Return a fresh key such as ``notif_1718000000000_0_3f9a...``.

        Importance: Keys are safe path segments (no slash, dot, or reserved characters).
        Alternatives: Let callers build keys inline.
        """

        millis = int(self._clock() * 1000)
        return f"{prefix}_{millis}_{next(self._counter)}_{secrets.token_hex(12)}"
