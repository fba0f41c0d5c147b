"""
Stimulus sequence generation.

Trial sequences are open-ended: no symbol repeats back to back, and the
buffer is extended in chunks whenever the run outlives it.

Real sequences have a fixed length, exact per-symbol counts and no adjacent
repeats. Rejection sampling is tried first as a fast path; the backtracking
search behind it finds an arrangement whenever one exists.
"""
from __future__ import annotations

import random
from collections import Counter
from typing import Sequence

from psychopy import logging

from cpt import config
from cpt.battery import Phase, Polarity


class ConstraintUnsatisfiable(ValueError):
    """No arrangement satisfies the exact-count and non-adjacency constraints."""


def has_adjacent_repeat(sequence: Sequence[str]) -> bool:
    return any(a == b for a, b in zip(sequence, sequence[1:]))


def is_valid(sequence: Sequence[str], quotas: dict[str, int]) -> bool:
    """True if no neighbours repeat and every quota symbol hits its count exactly."""
    if any(s is None for s in sequence) or has_adjacent_repeat(sequence):
        return False
    counts = Counter(sequence)
    return all(counts[symbol] == n for symbol, n in quotas.items())


def max_non_adjacent(slots: int, first_blocked: bool) -> int:
    """Most non-adjacent placements of one symbol that fit in `slots` positions."""
    return slots // 2 if first_blocked else (slots + 1) // 2


def arrange(
    length: int,
    alphabet: Sequence[str],
    quotas: dict[str, int],
    rng: random.Random,
    previous: str | None = None,
) -> list[str] | None:
    """
    Place symbols left to right so that every quota symbol appears exactly
    quotas[symbol] times and no symbol follows itself. Symbols without a
    quota are unconstrained fillers.

    Exhaustive: returns None only if no arrangement exists. Branches are
    pruned by a capacity check, and dead (position, last, remaining) states
    are memoised so the search stays polynomial.
    """
    free = [s for s in alphabet if s not in quotas]
    remaining = dict(quotas)
    order = list(quotas)
    dead: set[tuple] = set()
    out: list[str] = []

    def feasible(slots: int, last: str | None) -> bool:
        needed = sum(remaining.values())
        if needed > slots or (not free and needed != slots):
            return False
        return all(n <= max_non_adjacent(slots, last == s) for s, n in remaining.items())

    def place(pos: int, last: str | None) -> bool:
        if pos == length:
            return True
        state = (pos, last, tuple(remaining[s] for s in order))
        if state in dead:
            return False
        candidates = [
            s for s in alphabet if s != last and (s not in remaining or remaining[s] > 0)
        ]
        rng.shuffle(candidates)
        for symbol in candidates:
            counted = symbol in remaining
            if counted:
                remaining[symbol] -= 1
            if feasible(length - pos - 1, symbol):
                out.append(symbol)
                if place(pos + 1, symbol):
                    return True
                out.pop()
            if counted:
                remaining[symbol] += 1
        dead.add(state)
        return False

    if not feasible(length, previous):
        return None
    return out if place(0, previous) else None


class SequenceGenerator:
    """Builds trial and real sequences for one alphabet/target/polarity."""

    def __init__(
        self,
        alphabet: Sequence[str],
        target: str,
        polarity: Polarity,
        rng: random.Random | None = None,
        go_target_share: float = config.GO_TARGET_SHARE,
    ) -> None:
        if len(set(alphabet)) < 2:
            raise ValueError("alphabet needs at least two distinct symbols")
        if target not in alphabet:
            raise ValueError(f"target {target!r} not in alphabet {tuple(alphabet)}")
        self.alphabet: tuple[str, ...] = tuple(alphabet)
        self.target = target
        self.polarity = Polarity(polarity)
        self.go_target_share = go_target_share
        self._rng = rng if rng is not None else random.Random()

    def generate(self, length: int, phase: Phase) -> list[str]:
        if Phase(phase) is Phase.TRIAL:
            return self.trial(length)
        return self.real(length)

    # ── TRIAL ────────────────────────────────────────────────────────────────

    def trial(self, length: int, previous: str | None = None) -> list[str]:
        """Uniform draw per position, excluding only the symbol before it."""
        sequence: list[str] = []
        last = previous
        for _ in range(length):
            last = self._rng.choice([s for s in self.alphabet if s != last])
            sequence.append(last)
        return sequence

    def extend(self, sequence: list[str], size: int = config.TRIAL_EXTENSION_LEN) -> list[str]:
        """Append `size` trial symbols in place; the seam never repeats the old tail."""
        tail = sequence[-1] if sequence else None
        sequence.extend(self.trial(size, previous=tail))
        return sequence

    # ── REAL ─────────────────────────────────────────────────────────────────

    def real_quotas(self, length: int) -> dict[str, int]:
        """Go: the target fills GO_TARGET_SHARE of rounds. No-go: every symbol equally."""
        if self.polarity is Polarity.GO:
            return {self.target: int(round(length * self.go_target_share))}
        share, rest = divmod(length, len(self.alphabet))
        if rest:
            raise ConstraintUnsatisfiable(
                f"{length} rounds cannot be split evenly over {len(self.alphabet)} symbols"
            )
        return {symbol: share for symbol in self.alphabet}

    def real(
        self,
        length: int = config.REAL_ROUND_COUNT,
        quotas: dict[str, int] | None = None,
        *,
        best_effort: bool = False,
    ) -> list[str]:
        """
        Fixed-length sequence with exact counts and no adjacent repeats.

        Raises ConstraintUnsatisfiable when no arrangement exists, unless
        best_effort is set, in which case a greedy sequence is returned and
        the violation is logged.
        """
        quotas = self.real_quotas(length) if quotas is None else dict(quotas)
        unknown = set(quotas) - set(self.alphabet)
        if unknown:
            raise ValueError(f"quota symbols not in alphabet: {sorted(unknown)}")
        if any(n < 0 for n in quotas.values()):
            raise ValueError("quotas must be >= 0")

        sequence = self._sample(length, quotas)
        if sequence is None:
            logging.debug(f"Rejection sampling exhausted for {quotas}; backtracking")
            sequence = arrange(length, self.alphabet, quotas, self._rng)
        if sequence is not None and is_valid(sequence, quotas):
            return sequence

        if not best_effort:
            raise ConstraintUnsatisfiable(
                f"No {length}-round arrangement of {self.alphabet} with counts {quotas} "
                f"and no adjacent repeats"
            )
        sequence = self._greedy(length, quotas)
        logging.warning(
            f"Best-effort sequence violates constraints: wanted {quotas}, "
            f"got {dict(Counter(sequence))}, adjacent repeat={has_adjacent_repeat(sequence)}"
        )
        return sequence

    def _sample(self, length: int, quotas: dict[str, int]) -> list[str] | None:
        free = [s for s in self.alphabet if s not in quotas]
        if len(quotas) == 1 and free:
            return self._sample_positions(length, quotas)
        if not free and sum(quotas.values()) == length:
            return self._sample_shuffle(quotas)
        return None

    def _sample_positions(self, length: int, quotas: dict[str, int]) -> list[str] | None:
        """Draw random target positions, keep the non-adjacent ones, then fill the gaps."""
        ((target, count),) = quotas.items()
        others = [s for s in self.alphabet if s != target]
        positions: list[int] = []
        for _ in range(config.REJECTION_ATTEMPTS):
            if len(positions) == count:
                break
            candidate = self._rng.randrange(length)
            if all(abs(p - candidate) > 1 for p in positions):
                positions.append(candidate)
        if len(positions) != count:
            return None

        chosen = set(positions)
        sequence: list[str] = []
        for i in range(length):
            if i in chosen:
                sequence.append(target)
                continue
            options = [s for s in others if not sequence or s != sequence[-1]]
            if not options:
                return None
            sequence.append(self._rng.choice(options))
        return sequence

    def _sample_shuffle(self, quotas: dict[str, int]) -> list[str] | None:
        pool = [symbol for symbol, n in quotas.items() for _ in range(n)]
        for _ in range(config.REJECTION_ATTEMPTS):
            self._rng.shuffle(pool)
            if not has_adjacent_repeat(pool):
                return list(pool)
        return None

    def _greedy(self, length: int, quotas: dict[str, int]) -> list[str]:
        remaining = dict(quotas)
        sequence: list[str] = []
        for _ in range(length):
            last = sequence[-1] if sequence else None
            options = [s for s in self.alphabet if s != last and remaining.get(s, 1) > 0]
            if not options:
                options = [s for s in self.alphabet if remaining.get(s, 1) > 0] or list(self.alphabet)
            symbol = self._rng.choice(options)
            if symbol in remaining:
                remaining[symbol] -= 1
            sequence.append(symbol)
        return sequence
