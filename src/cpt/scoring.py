"""
Response scoring: ResponseRecord, RunResult, ResponseScorer.
No clocks and no rendering here; times are passed in by the caller.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from cpt.battery import Polarity


class Outcome(str, Enum):
    HIT = "hit"
    COMMISSION_MISS = "commission"
    IGNORED = "ignored"


@dataclass
class ResponseRecord:
    hits: int = 0
    commission_misses: int = 0
    omission_misses: int = 0
    hit_reaction_times: dict[int, int] = field(default_factory=dict)   # round_n -> ms
    # Round-indexed debounce markers; 0 means "no round yet"
    pressed_for_round: int = 0
    omission_checked_for_round: int = 0

    @property
    def mistakes(self) -> int:
        return self.commission_misses + self.omission_misses


@dataclass(frozen=True)
class RunResult:
    hits: int
    commission_misses: int
    omission_misses: int
    hit_reaction_times: dict[int, int]

    @property
    def total_misses(self) -> int:
        return self.commission_misses + self.omission_misses

    @property
    def mean_reaction_time_ms(self) -> int | None:
        return mean_reaction_time_ms(self.hit_reaction_times.values())

    def as_dict(self) -> dict:
        """Submission-payload shape (camelCase keys, string round numbers)."""
        return {
            "hits": self.hits,
            "commissionMisses": self.commission_misses,
            "omissionMisses": self.omission_misses,
            "hitReactionTimes": {str(k): v for k, v in sorted(self.hit_reaction_times.items())},
        }


def mean_reaction_time_ms(times: Iterable[int]) -> int | None:
    """Rounded arithmetic mean, or None when there are no hits."""
    times = list(times)
    if not times:
        return None
    return int(round(sum(times) / len(times)))


class ResponseScorer:
    """
    Classifies keypresses and omissions for one run.

    Go: pressing on the target is a hit, pressing on anything else a
    commission miss. No-go: the target is the only symbol that must not be
    pressed.
    """

    def __init__(self, target: str, polarity: Polarity) -> None:
        self.target = target
        self.polarity = Polarity(polarity)
        self.record = ResponseRecord()

    def requires_press(self, symbol: str) -> bool:
        if self.polarity is Polarity.GO:
            return symbol == self.target
        return symbol != self.target

    def score(
        self,
        round_n: int,
        symbol: str | None,
        now: float,
        origin: float,
    ) -> Outcome:
        """Score one press. `now` and `origin` are seconds on the same clock."""
        rec = self.record
        if symbol is None or rec.pressed_for_round == round_n:
            return Outcome.IGNORED
        rec.pressed_for_round = round_n

        if self.requires_press(symbol):
            rec.hits += 1
            rec.hit_reaction_times[round_n] = max(0, int(round((now - origin) * 1000)))
            return Outcome.HIT
        rec.commission_misses += 1
        return Outcome.COMMISSION_MISS

    def check_omission(self, round_n: int, symbol: str | None) -> bool:
        """
        Evaluate an elapsed round once. Returns True if an omission was counted.
        """
        rec = self.record
        if round_n < 1 or rec.omission_checked_for_round == round_n:
            return False
        rec.omission_checked_for_round = round_n
        if symbol is None or not self.requires_press(symbol):
            return False
        if rec.pressed_for_round == round_n:
            return False
        rec.omission_misses += 1
        return True

    @property
    def mistakes(self) -> int:
        return self.record.mistakes

    def result(self) -> RunResult:
        rec = self.record
        return RunResult(
            hits=rec.hits,
            commission_misses=rec.commission_misses,
            omission_misses=rec.omission_misses,
            hit_reaction_times=dict(rec.hit_reaction_times),
        )
