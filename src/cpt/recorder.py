"""
Data recording: MetricsStore (the metrics sink), CsvWriter, ReactionTimeWriter,
results summary, write_manifest and write_session_json.
"""
from __future__ import annotations

import csv
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd
from psychopy import logging

from cpt.scoring import RunResult, mean_reaction_time_ms

if TYPE_CHECKING:
    from cpt.session import SessionInfo


@dataclass
class ReactionTimeRow:
    subject_id: str
    test_id: str
    round_n: int
    rt_ms: int


REACTION_TIME_COLUMNS: list[str] = ["subject_id", "test_id", "round_n", "rt_ms"]

RESULT_COLUMNS: list[str] = [
    "test_id", "hits", "commission_misses", "omission_misses", "total_misses",
    "mean_rt_ms", "n_rt",
]


class CsvWriter:
    def __init__(self, path: Path, columns: list[str]) -> None:
        self._file = open(path, "w", newline="")
        self._writer = csv.DictWriter(self._file, fieldnames=columns)
        self._writer.writeheader()
        self._columns = columns

    def append(self, record: object) -> None:
        row = {k: getattr(record, k) for k in self._columns}
        self._writer.writerow(row)
        self._file.flush()

    def close(self) -> None:
        self._file.close()


class ReactionTimeWriter(CsvWriter):
    def __init__(self, path: Path) -> None:
        super().__init__(path, REACTION_TIME_COLUMNS)

    def append(self, row: ReactionTimeRow) -> None:  # type: ignore[override]
        super().append(row)


def _test_order(test_id: str) -> tuple[int, str]:
    digits = "".join(ch for ch in test_id if ch.isdigit())
    return (int(digits) if digits else 0, test_id)


class MetricsStore:
    """
    Collects one RunResult per test id. `record` is the callback handed to
    RunController; each recorded run's hit reaction times are flushed to the
    reaction-time CSV immediately.
    """

    def __init__(self, subject_id: str = "", rt_writer: ReactionTimeWriter | None = None) -> None:
        self.subject_id = subject_id
        self.results: dict[str, RunResult] = {}
        self._rt_writer = rt_writer

    def record(self, test_id: str, result: RunResult) -> None:
        if test_id in self.results:
            logging.warning(f"Overwriting recorded metrics for {test_id}")
        self.results[test_id] = result
        if self._rt_writer is not None:
            for round_n, rt_ms in sorted(result.hit_reaction_times.items()):
                self._rt_writer.append(ReactionTimeRow(self.subject_id, test_id, round_n, rt_ms))

    def all_reaction_times(self) -> list[int]:
        return [rt for r in self.results.values() for rt in r.hit_reaction_times.values()]

    def summary(self) -> pd.DataFrame:
        """One row per recorded test, sorted by test number, plus a pooled 'total' row."""
        rows = []
        for test_id in sorted(self.results, key=_test_order):
            r = self.results[test_id]
            rows.append({
                "test_id": test_id,
                "hits": r.hits,
                "commission_misses": r.commission_misses,
                "omission_misses": r.omission_misses,
                "total_misses": r.total_misses,
                "mean_rt_ms": r.mean_reaction_time_ms,
                "n_rt": len(r.hit_reaction_times),
            })
        all_rts = self.all_reaction_times()
        rows.append({
            "test_id": "total",
            "hits": sum(r.hits for r in self.results.values()),
            "commission_misses": sum(r.commission_misses for r in self.results.values()),
            "omission_misses": sum(r.omission_misses for r in self.results.values()),
            "total_misses": sum(r.total_misses for r in self.results.values()),
            "mean_rt_ms": mean_reaction_time_ms(all_rts),
            "n_rt": len(all_rts),
        })
        return pd.DataFrame(rows, columns=RESULT_COLUMNS).set_index("test_id")

    def payload(self) -> dict[str, dict]:
        return {test_id: self.results[test_id].as_dict() for test_id in sorted(self.results, key=_test_order)}


def write_results(path: Path, store: MetricsStore) -> pd.DataFrame:
    summary = store.summary()
    summary.to_csv(path)
    return summary


def write_manifest(
    run_dir: Path,
    session_info: "SessionInfo",
    session_time: datetime,
    frame_rate: float,
    test_ids: list[str],
) -> None:
    from cpt import __version__
    from cpt.config import (
        GO_TARGET_SHARE,
        REAL_ROUND_COUNT,
        ROUND_INTERVAL_MS,
        TRIAL_HIT_TARGET,
        TRIAL_MISTAKE_CEILING,
    )

    manifest = {
        "cpt_task_version": __version__,
        "subject_id": session_info.subject_id,
        "run_trials": session_info.run_trials,
        "session_time": session_time.isoformat(timespec="seconds"),
        "frame_rate_hz": round(frame_rate, 3),
        "tests": test_ids,
        "study_params": {
            "round_interval_ms": ROUND_INTERVAL_MS,
            "real_round_count": REAL_ROUND_COUNT,
            "trial_mistake_ceiling": TRIAL_MISTAKE_CEILING,
            "trial_hit_target": TRIAL_HIT_TARGET,
            "go_target_share": GO_TARGET_SHARE,
        },
    }
    with open(run_dir / "manifest.json", "w") as f:
        json.dump(manifest, f, indent=2)


def write_session_json(
    run_dir: Path,
    session_info: "SessionInfo",
    store: MetricsStore,
    run_key: str | None = None,
) -> str:
    """Write the submission body (run key + participant + merged metrics); return the key."""
    run_key = run_key or uuid.uuid4().hex
    body = {
        "key": run_key,
        "participant": {"subjectId": session_info.subject_id},
        "metrics": store.payload(),
    }
    with open(run_dir / "session.json", "w") as f:
        json.dump(body, f, indent=2)
    return run_key
