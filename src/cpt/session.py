"""
Session initialisation: dialog, screen setup, output directory and test
selection.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pyglet
from psychopy import core, gui, monitors, visual

from cpt import config
from cpt.battery import BATTERY, TestDefinition


@dataclass
class SessionInfo:
    subject_id: str
    run_trials: bool
    first_test: int            # 1-based index into the battery


def _parse_first_test(raw: str) -> int:
    try:
        n = int(str(raw).strip())
    except ValueError:
        return 1
    return min(max(n, 1), len(BATTERY))


def show_dialog() -> SessionInfo:
    """Present the startup dialog and return a SessionInfo."""
    fields = {
        "Subject ID": "XXX000",
        "Run practice trials? (yes/no)": "yes",
        f"First test (1-{len(BATTERY)})": "1",
    }
    dlg = gui.DlgFromDict(dictionary=fields, title="CPT Task")
    if not dlg.OK:
        core.quit()

    return SessionInfo(
        subject_id=str(fields["Subject ID"]).strip(),
        run_trials=fields["Run practice trials? (yes/no)"].strip().lower() == "yes",
        first_test=_parse_first_test(fields[f"First test (1-{len(BATTERY)})"]),
    )


def select_tests(session_info: SessionInfo) -> list[TestDefinition]:
    return BATTERY[session_info.first_test - 1:]


def setup_screen() -> tuple[list[int], visual.Window]:
    """Create and return (win_res, win)."""
    display = pyglet.canvas.get_display()
    screens = display.get_screens()
    win_res = [screens[-1].width, screens[-1].height]
    exp_mon = monitors.Monitor("exp_mon")
    exp_mon.setSizePix(win_res)
    win = visual.Window(
        size=win_res,
        screen=len(screens) - 1,
        allowGUI=False,
        fullscr=True,
        monitor=exp_mon,
        units="height",
        color=config.BACKGROUND_COLOR,
    )
    return win_res, win


def make_run_dir(data_dir: Path, session_info: SessionInfo, session_time: datetime) -> Path:
    """Create and return data/{subject_id}_{YYYYMMDDTHHMMSS}/."""
    ts = session_time.strftime("%Y%m%dT%H%M%S")
    run_dir = data_dir / f"{session_info.subject_id}_{ts}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir
