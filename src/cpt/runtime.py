"""
RunController: one trial or real run of a sub-test.

State machine:  IDLE -> COUNTDOWN -> RUNNING -> COMPLETED
                                          `-> RESTARTING -> COUNTDOWN  (trial only)

The controller never reads a clock itself. The frame loop passes the current
time to update() and each keypress timestamp to press(); delayed transitions
are timers fired from update(), so a headless test can drive a whole run by
stepping time.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable

from psychopy import logging

from cpt import config
from cpt.battery import Phase, TestDefinition
from cpt.clock import PresentationClock
from cpt.scoring import Outcome, ResponseScorer, RunResult
from cpt.sequence import SequenceGenerator


class RunState(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    COMPLETED = "completed"
    RESTARTING = "restarting"


@dataclass(frozen=True)
class RunConfig:
    round_interval_ms: int = config.ROUND_INTERVAL_MS
    real_round_count: int = config.REAL_ROUND_COUNT
    trial_mistake_ceiling: int = config.TRIAL_MISTAKE_CEILING
    trial_hit_target: int = config.TRIAL_HIT_TARGET
    trial_sequence_len: int = config.TRIAL_SEQUENCE_LEN
    trial_extension_len: int = config.TRIAL_EXTENSION_LEN
    lead_in_s: float = config.LEAD_IN_S
    countdown_from: int = config.COUNTDOWN_FROM
    countdown_step_s: float = config.COUNTDOWN_STEP_S
    start_hold_s: float = config.START_HOLD_S
    completion_delay_s: float = config.COMPLETION_DELAY_S
    restart_delay_s: float = config.RESTART_DELAY_S


@dataclass(frozen=True)
class RunView:
    """What the screen should show right now (pure data)."""

    test_id: str
    phase: Phase
    state: RunState
    round_n: int
    symbol: str | None
    message: str | None
    countdown: str | None
    hits: int
    commission_misses: int
    omission_misses: int


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    action: Callable[[float], None] = field(compare=False)


class RunController:
    def __init__(
        self,
        test_id: str,
        generator: SequenceGenerator,
        phase: Phase,
        run_config: RunConfig | None = None,
        *,
        on_record: Callable[[str, RunResult], None] | None = None,
        on_advance: Callable[[], None] | None = None,
        on_cue: Callable[[str], None] | None = None,
    ) -> None:
        self.test_id = test_id
        self.generator = generator
        self.phase = Phase(phase)
        self.cfg = run_config or RunConfig()
        self._on_record = on_record
        self._on_advance = on_advance
        self._on_cue = on_cue

        self.clock = PresentationClock(self.cfg.round_interval_ms)
        self.state = RunState.IDLE
        self.round_n = 1
        self.restarts = 0
        self.done = False

        self._timers: list[_Timer] = []
        self._timer_seq = 0
        self._finished = False          # guards every terminal transition
        self._message: str | None = None
        self._countdown: str | None = None
        self._round_started_at: float | None = None

        # Real sequences are built here so ConstraintUnsatisfiable reaches the caller.
        self.sequence = self._new_sequence()
        self.scorer = ResponseScorer(generator.target, generator.polarity)

    @property
    def is_trial(self) -> bool:
        return self.phase is Phase.TRIAL

    # ── LIFECYCLE ────────────────────────────────────────────────────────────

    def start(self, now: float) -> None:
        if self.state is not RunState.IDLE:
            return
        self._begin_countdown(now)

    def cancel(self) -> None:
        """Tear down: drop pending transitions and stop the clock."""
        if self.clock.running:
            logging.exp(f"{self.test_id} {self.phase.value}: cancelled in round {self.round_n}")
        self._timers.clear()
        self.clock.stop()
        self._finished = True

    def update(self, now: float) -> None:
        """Fire every timer and round tick due at `now`, earliest first."""
        while True:
            timer = min(self._timers) if self._timers else None
            tick = self.clock.next_tick
            timer_due = timer is not None and timer.due <= now
            tick_due = tick is not None and tick <= now
            if timer_due and (not tick_due or timer.due <= tick):
                self._timers.remove(timer)
                self._guarded(timer.action, timer.due)
            elif tick_due:
                self.clock.pop_tick(now)
                self._guarded(self._on_tick, tick)
            else:
                break

    def mark_onset(self, round_n: int, t: float) -> None:
        """Post-flip callback: the stimulus for round_n is now on screen."""
        if self.state is RunState.RUNNING and round_n == self.round_n:
            self.clock.mark_onset(t)

    # ── INPUT ────────────────────────────────────────────────────────────────

    def press(self, now: float) -> Outcome:
        """Score one response keypress timestamped `now`."""
        self.update(now)
        if self._finished or self.state is not RunState.RUNNING:
            return Outcome.IGNORED
        try:
            return self._handle_press(now)
        except Exception as exc:
            logging.error(f"{self.test_id}: keypress handling failed in round {self.round_n}: {exc!r}")
            return Outcome.IGNORED

    def _handle_press(self, now: float) -> Outcome:
        round_n = self.round_n
        symbol = self.symbol_at(round_n)
        onset = self.clock.onset
        # A key logged before the first paint of this round is timed from the tick
        origin = onset if onset is not None and onset <= now else self._round_started_at
        if origin is None:
            origin = now
        outcome = self.scorer.score(round_n, symbol, now, origin)
        if outcome is Outcome.IGNORED:
            return outcome

        self._cue("response")
        rec = self.scorer.record
        if outcome is Outcome.HIT:
            logging.exp(
                f"{self.test_id} {self.phase.value} round {round_n}: hit on {symbol} "
                f"rt={rec.hit_reaction_times[round_n]} ms"
            )
            if self.is_trial and rec.hits >= self.cfg.trial_hit_target:
                self._complete_trial(now)
        else:
            logging.exp(f"{self.test_id} {self.phase.value} round {round_n}: commission on {symbol}")
            self._check_mistakes(now)
        return outcome

    # ── ROUNDS ───────────────────────────────────────────────────────────────

    def symbol_at(self, round_n: int) -> str | None:
        """Symbol shown in round_n; trial sequences grow on demand."""
        idx = round_n - 1
        if idx < 0:
            return None
        if self.is_trial:
            while idx >= len(self.sequence):
                self.generator.extend(self.sequence, self.cfg.trial_extension_len)
        return self.sequence[idx] if idx < len(self.sequence) else None

    def _on_tick(self, t: float) -> None:
        prev = self.round_n
        try:
            symbol = self.symbol_at(prev)
            if self.scorer.check_omission(prev, symbol):
                logging.exp(f"{self.test_id} {self.phase.value} round {prev}: omission on {symbol}")
                if self._check_mistakes(t):
                    return
        except Exception as exc:
            logging.error(f"{self.test_id}: omission check failed for round {prev}: {exc!r}")

        next_round = prev + 1
        if not self.is_trial and next_round > self.cfg.real_round_count:
            self._complete_real(t)
            return
        self.round_n = next_round
        self._round_started_at = t
        self.clock.clear_onset()

    def _check_mistakes(self, t: float) -> bool:
        """Trial only: restart once the mistake ceiling is reached."""
        if self.is_trial and self.scorer.mistakes >= self.cfg.trial_mistake_ceiling:
            self._restart(t)
            return True
        return False

    # ── TRANSITIONS ──────────────────────────────────────────────────────────

    def _begin_countdown(self, t: float) -> None:
        self.state = RunState.COUNTDOWN
        self._message = config.LEAD_IN_TEXT[self.phase.value]
        self._countdown = None
        self._schedule(t + self.cfg.lead_in_s, partial(self._countdown_step, n=self.cfg.countdown_from))

    def _countdown_step(self, t: float, n: int) -> None:
        self._message = None
        if n > 0:
            self._countdown = str(n)
            self._cue("countdown")
            self._schedule(t + self.cfg.countdown_step_s, partial(self._countdown_step, n=n - 1))
        else:
            self._countdown = config.START_TEXT
            self._cue("start")
            self._schedule(t + self.cfg.start_hold_s, self._begin_running)

    def _begin_running(self, t: float) -> None:
        self.state = RunState.RUNNING
        self._countdown = None
        self.round_n = 1
        self._round_started_at = t
        self.clock.start(t)
        logging.exp(f"{self.test_id} {self.phase.value}: running ({len(self.sequence)} symbols buffered)")

    def _complete_real(self, t: float) -> None:
        if self._finished:
            return
        self._finished = True
        self.clock.stop()
        self.state = RunState.COMPLETED
        self._message = config.REAL_DONE_TEXT
        self._schedule(t + self.cfg.completion_delay_s, self._advance)

        result = self.scorer.result()
        logging.exp(
            f"{self.test_id} real complete: hits={result.hits} "
            f"commission={result.commission_misses} omission={result.omission_misses}"
        )
        if self._on_record is not None:
            try:
                self._on_record(self.test_id, result)
            except Exception as exc:
                logging.error(f"{self.test_id}: recording metrics failed: {exc!r}")

    def _complete_trial(self, t: float) -> None:
        if self._finished:
            return
        self._finished = True
        self.clock.stop()
        self.state = RunState.COMPLETED
        self._message = config.TRIAL_DONE_TEXT
        self._schedule(t + self.cfg.completion_delay_s, self._advance)
        logging.exp(f"{self.test_id} trial complete after {self.restarts} restart(s)")

    def _advance(self, t: float) -> None:
        if self.done:
            return
        self.done = True
        self._message = None
        if self._on_advance is not None:
            self._on_advance()

    def _restart(self, t: float) -> None:
        if self._finished or not self.is_trial:
            return
        self._finished = True
        self.clock.stop()
        self.state = RunState.RESTARTING
        self._message = config.RESTART_TEXT
        self._schedule(t + self.cfg.restart_delay_s, self._reset)
        logging.exp(f"{self.test_id} trial: {self.scorer.mistakes} mistakes, restarting")

    def _reset(self, t: float) -> None:
        self.sequence = self._new_sequence()
        self.scorer = ResponseScorer(self.generator.target, self.generator.polarity)
        self.round_n = 1
        self._round_started_at = None
        self.clock.clear_onset()
        self.restarts += 1
        self._finished = False
        self._begin_countdown(t)

    # ── HELPERS ──────────────────────────────────────────────────────────────

    def _new_sequence(self) -> list[str]:
        if self.is_trial:
            return self.generator.trial(self.cfg.trial_sequence_len)
        return self.generator.real(self.cfg.real_round_count)

    def _schedule(self, due: float, action: Callable[[float], None]) -> None:
        self._timer_seq += 1
        self._timers.append(_Timer(due, self._timer_seq, action))

    def _guarded(self, action: Callable[[float], None], t: float) -> None:
        try:
            action(t)
        except Exception as exc:
            logging.error(f"{self.test_id}: handler failed at t={t:.3f}: {exc!r}")

    def _cue(self, name: str) -> None:
        if self._on_cue is None:
            return
        try:
            self._on_cue(name)
        except Exception as exc:
            logging.warning(f"Audio cue {name!r} failed: {exc!r}")

    def view(self) -> RunView:
        rec = self.scorer.record
        running = self.state is RunState.RUNNING
        return RunView(
            test_id=self.test_id,
            phase=self.phase,
            state=self.state,
            round_n=self.round_n,
            symbol=self.symbol_at(self.round_n) if running else None,
            message=self._message,
            countdown=self._countdown,
            hits=rec.hits,
            commission_misses=rec.commission_misses,
            omission_misses=rec.omission_misses,
        )

    def result(self) -> RunResult:
        return self.scorer.result()


def build_controller(
    definition: TestDefinition,
    phase: Phase,
    run_config: RunConfig | None = None,
    rng: random.Random | None = None,
    **callbacks,
) -> RunController:
    """RunController for one battery entry."""
    generator = SequenceGenerator(definition.alphabet, definition.target, definition.polarity, rng=rng)
    return RunController(definition.test_id, generator, phase, run_config, **callbacks)
