"""Deterministic random source with named per-subsystem streams."""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass


@dataclass
class DeterministicRNG:
    """Owns deterministic RNG streams without touching global random state.

    Each subsystem (roster, behavior, physics, powers) pulls from its own
    stream, so adding draws in one subsystem does not shift another's sequence.
    """

    seed: int

    def __post_init__(self) -> None:
        self._streams: dict[str, random.Random] = {}

    def stream(self, name: str) -> random.Random:
        """Return independent deterministic stream by name."""
        if name not in self._streams:
            # Stable cross-process seed derivation instead of built-in hash().
            digest = hashlib.sha256(f"{self.seed}:{name}".encode("utf-8")).digest()
            derived_seed = int.from_bytes(digest[:8], byteorder="big", signed=False) & 0xFFFFFFFF
            self._streams[name] = random.Random(derived_seed)
        return self._streams[name]

    def token(self, name: str = "ids") -> str:
        """Return a reproducible 32-character hex identifier."""
        return f"{self.stream(name).getrandbits(128):032x}"
