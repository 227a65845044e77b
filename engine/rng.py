# engine/rng.py

"""
Seeded random number generation for the Monte Carlo engine.

All draws come from a 32-bit XorShift generator implemented with plain integer
arithmetic, so an identical seed gives a bit-identical sequence on every
platform. Sub-models never share a generator: they call `derive_rng` with a
stable label (and salt) to obtain an independent child stream.

Wrappers:
- RecordingRandomSource: captures every draw into per-type tapes.
- ReplayRandomSource: re-emits a tape, optionally mirrored (1-u, -z).
- OverlayRandomSource: serves pre-set uniforms/normals first, then a live base.
- AntitheticRandomSource: a live source whose symmetric draws are mirrored.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

MASK_32 = 0xFFFFFFFF
TWO_POW_32 = 4294967296.0
DEFAULT_SEED = 123456789
MIN_UNIFORM = 1e-12
MAX_NORMALIZED_UNIFORM = 1.0 - 2.220446049250313e-16


# =============================================================================
# CORE GENERATOR
# =============================================================================

class RandomSource:
    """
    XorShift32 generator with the draw methods used across the engine.

    Parameters
    ----------
    seed : int
        Any integer; reduced to 32 bits. Zero maps to a fixed non-zero seed
        because XorShift has an all-zero fixed point.
    """

    def __init__(self, seed: int = DEFAULT_SEED):
        self._state = (int(seed) & MASK_32) or DEFAULT_SEED

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        """Uniform draw in [0, 1)."""
        x = self._state
        x ^= (x << 13) & MASK_32
        x ^= x >> 17
        x ^= (x << 5) & MASK_32
        self._state = x & MASK_32
        return self._state / TWO_POW_32

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        return low + (high - low) * self.next()

    def normal(self) -> float:
        """Standard normal via Box-Muller (cosine branch only)."""
        u = max(self.next(), MIN_UNIFORM)
        v = max(self.next(), MIN_UNIFORM)
        return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)

    def random_int(self, low: int, high: int) -> int:
        """Integer in [low, high] inclusive."""
        return math.floor(self.uniform(low, high + 1))

    def student_t(self, df: int) -> float:
        z = self.normal()
        chi_squared = 0.0
        for _ in range(int(df)):
            n = self.normal()
            chi_squared += n * n
        return z / math.sqrt(chi_squared / df)

    def exponential(self, lam: float = 1.0) -> float:
        return -math.log(1.0 - self.next()) / lam

    def poisson(self, lam: float) -> int:
        """Knuth's multiplication method; fine for the small rates used here."""
        limit = math.exp(-lam)
        k = 0
        p = 1.0
        while True:
            k += 1
            p *= self.next()
            if p <= limit:
                break
        return k - 1

    def clone(self) -> "RandomSource":
        return RandomSource(self._state)

    def reset(self, seed: int) -> None:
        self._state = (int(seed) & MASK_32) or DEFAULT_SEED


# =============================================================================
# CHILD STREAM DERIVATION
# =============================================================================

def hash32(text: str) -> int:
    """djb2-style 32-bit hash (multiply by 33, xor each character)."""
    h = 5381
    for ch in text:
        h = (((h << 5) + h) ^ ord(ch)) & MASK_32
    return h


def _salt_text(salt) -> str:
    # Integral floats print without a fractional part so that age 65.0 and 65
    # select the same stream.
    if isinstance(salt, float) and salt.is_integer():
        return str(int(salt))
    return str(salt)


def derive_rng(parent, label: str, salt=0) -> RandomSource:
    """
    Build a child generator keyed by `label` and `salt`.

    With a parent, two uniforms are consumed from it and mixed with the label
    hash, so the child depends on both the parent's position and the label.
    Without a parent, the child is seeded from the label hash alone.
    """
    label_hash = hash32(f"{label}|{_salt_text(salt)}")
    if parent is not None:
        a = math.floor(parent.next() * MASK_32) & MASK_32
        b = math.floor(parent.next() * MASK_32) & MASK_32
        rotated = ((b << 1) | (b >> 31)) & MASK_32
        mixed = (a ^ rotated ^ label_hash) & MASK_32
        return RandomSource(mixed or 1)
    return RandomSource(label_hash or 1)


# =============================================================================
# RECORD / REPLAY
# =============================================================================

@dataclass
class RandomTape:
    """Per-type record of draws. Parameterized draws keep their parameters."""
    uniforms: List[float] = field(default_factory=list)
    normals: List[float] = field(default_factory=list)
    student_ts: List[Dict[str, float]] = field(default_factory=list)
    exponentials: List[Dict[str, float]] = field(default_factory=list)
    poissons: List[Dict[str, float]] = field(default_factory=list)
    random_ints: List[Dict[str, int]] = field(default_factory=list)

    def copy(self) -> "RandomTape":
        return RandomTape(
            uniforms=list(self.uniforms),
            normals=list(self.normals),
            student_ts=[dict(x) for x in self.student_ts],
            exponentials=[dict(x) for x in self.exponentials],
            poissons=[dict(x) for x in self.poissons],
            random_ints=[dict(x) for x in self.random_ints],
        )


class RecordingRandomSource:
    """Wraps a source and records every draw it hands out."""

    def __init__(self, base):
        self.base = base
        self._tape = RandomTape()

    def next(self) -> float:
        u = self.base.next()
        self._tape.uniforms.append(u)
        return u

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        u = self.base.uniform(low, high)
        # Stored normalized to [0, 1) so replay can mirror it.
        normalized = (u - low) / (high - low) if high != low else 0.0
        self._tape.uniforms.append(max(0.0, min(MAX_NORMALIZED_UNIFORM, normalized)))
        return u

    def normal(self) -> float:
        z = self.base.normal()
        self._tape.normals.append(z)
        return z

    def student_t(self, df: int) -> float:
        t = self.base.student_t(df)
        self._tape.student_ts.append({"df": df, "value": t})
        return t

    def exponential(self, lam: float = 1.0) -> float:
        v = self.base.exponential(lam)
        self._tape.exponentials.append({"lam": lam, "value": v})
        return v

    def poisson(self, lam: float) -> int:
        v = self.base.poisson(lam)
        self._tape.poissons.append({"lam": lam, "value": v})
        return v

    def random_int(self, low: int, high: int) -> int:
        v = self.base.random_int(low, high)
        self._tape.random_ints.append({"low": low, "high": high, "value": v})
        return v

    def get_tape(self) -> RandomTape:
        return self._tape.copy()


class ReplayRandomSource:
    """
    Re-emits a recorded tape. With `antithetic=True`, uniforms are mirrored
    to 1-u and normal / Student-t values are negated; exponential, Poisson and
    integer draws replay unchanged. Exhausted tapes fall back to neutral values
    (0.5 for uniforms, 0 for symmetric draws, the midpoint for integers).
    """

    def __init__(self, tape: RandomTape, antithetic: bool = False):
        self.tape = tape
        self.mirror = antithetic
        self._idx = {"u": 0, "n": 0, "t": 0, "e": 0, "p": 0, "i": 0}

    def _take(self, key: str, seq: Sequence, default):
        i = self._idx[key]
        self._idx[key] = i + 1
        return seq[i] if i < len(seq) else default

    def next(self) -> float:
        u = self._take("u", self.tape.uniforms, 0.5)
        return 1.0 - u if self.mirror else u

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        return low + (high - low) * self.next()

    def normal(self) -> float:
        z = self._take("n", self.tape.normals, 0.0)
        return -z if self.mirror else z

    def student_t(self, df: int) -> float:
        rec = self._take("t", self.tape.student_ts, {"df": df, "value": 0.0})
        return -rec["value"] if self.mirror else rec["value"]

    def exponential(self, lam: float = 1.0) -> float:
        return self._take("e", self.tape.exponentials, {"lam": lam, "value": 0.0})["value"]

    def poisson(self, lam: float) -> int:
        return self._take("p", self.tape.poissons, {"lam": lam, "value": 0})["value"]

    def random_int(self, low: int, high: int) -> int:
        default = {"low": low, "high": high, "value": (low + high) // 2}
        return self._take("i", self.tape.random_ints, default)["value"]


class OverlayRandomSource:
    """Serves the given uniforms / normals first, then delegates to `base`."""

    def __init__(self, base, uniforms: Optional[Sequence[float]] = None,
                 normals: Optional[Sequence[float]] = None):
        self.base = base
        self._uniforms = list(uniforms or [])
        self._normals = list(normals or [])
        self._u = 0
        self._n = 0

    def next(self) -> float:
        if self._u < len(self._uniforms):
            u = self._uniforms[self._u]
            self._u += 1
            return u
        return self.base.next()

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        if self._u < len(self._uniforms):
            return low + (high - low) * self.next()
        return self.base.uniform(low, high)

    def normal(self) -> float:
        if self._n < len(self._normals):
            z = self._normals[self._n]
            self._n += 1
            return z
        return self.base.normal()

    def student_t(self, df: int) -> float:
        return self.base.student_t(df)

    def exponential(self, lam: float = 1.0) -> float:
        return self.base.exponential(lam)

    def poisson(self, lam: float) -> int:
        return self.base.poisson(lam)

    def random_int(self, low: int, high: int) -> int:
        return self.base.random_int(low, high)


class AntitheticRandomSource(RandomSource):
    """
    Live generator whose uniform, normal and Student-t draws are mirrored.

    Seeded identically to a plain RandomSource it yields 1-u for every u and -z
    for every z the plain source would produce, so a pair of realizations run
    with the two sources form an antithetic pair.
    """

    def next(self) -> float:
        return 1.0 - super().next()

    def normal(self) -> float:
        u = max(RandomSource.next(self), MIN_UNIFORM)
        v = max(RandomSource.next(self), MIN_UNIFORM)
        return -(math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v))


__all__ = [
    "RandomSource",
    "RandomTape",
    "RecordingRandomSource",
    "ReplayRandomSource",
    "OverlayRandomSource",
    "AntitheticRandomSource",
    "hash32",
    "derive_rng",
]
