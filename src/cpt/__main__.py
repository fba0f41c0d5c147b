"""
Entry point: `python -m cpt` or `cpt-task` script.
Wires all modules together.
"""
from __future__ import annotations


def run() -> None:
    from psychopy import core
    core.checkPygletDuringWait = False

    from datetime import datetime
    from pathlib import Path

    from psychopy import event as psy_event, logging
    from rich.console import Console
    from rich.live import Live
    from rich.table import Table
    import rich.box

    from cpt import audio, display, recorder, session, task
    from cpt.battery import Phase

    # ── INITIALISE SESSION ───────────────────────────────────────────────────
    session_info = session.show_dialog()
    session_time = datetime.now()
    tests = session.select_tests(session_info)

    win_res, win = session.setup_screen()

    measured_fps = win.getActualFrameRate()
    frame_rate = measured_fps if (measured_fps is not None and measured_fps < 200) else 60.0

    # ── LOGGING ──────────────────────────────────────────────────────────────
    data_dir = Path("data")
    run_dir = session.make_run_dir(data_dir, session_info, session_time)
    logging.LogFile(str(run_dir / "experiment.log"), level=logging.EXP)
    logging.console.setLevel(logging.WARNING)  # rich handles terminal output

    rcon = Console(stderr=True)
    rcon.print(
        f"[bold]Session:[/bold] subject=[cyan]{session_info.subject_id}[/cyan]  "
        f"practice=[cyan]{session_info.run_trials}[/cyan]  "
        f"tests=[cyan]{tests[0].test_id}..{tests[-1].test_id}[/cyan]"
    )
    rcon.print(f"[bold]Frame rate:[/bold] {frame_rate:.1f} Hz")
    logging.exp(f"Session: subject={session_info.subject_id}  practice={session_info.run_trials}")
    logging.exp(f"Frame rate: {frame_rate:.1f} Hz")

    # ── STIMULI, AUDIO, OUTPUT ───────────────────────────────────────────────
    stimuli_obj = display.build_stimuli(win)
    tones = audio.ToneCues()

    file_stem = session_info.subject_id
    rt_writer = recorder.ReactionTimeWriter(run_dir / f"reaction_times_{file_stem}.csv")
    store = recorder.MetricsStore(subject_id=session_info.subject_id, rt_writer=rt_writer)
    recorder.write_manifest(
        run_dir=run_dir,
        session_info=session_info,
        session_time=session_time,
        frame_rate=frame_rate,
        test_ids=[t.test_id for t in tests],
    )

    win.mouseVisible = False
    run_clock = core.Clock()

    table = Table(box=rich.box.SIMPLE_HEAD)
    table.add_column("Test")
    table.add_column("Phase")
    table.add_column("Rule")
    table.add_column("Hits", justify="right")
    table.add_column("Comm.", justify="right")
    table.add_column("Omis.", justify="right")
    table.add_column("Mean RT", justify="right")
    table.add_column("Restarts", justify="right")

    phases = [Phase.TRIAL, Phase.REAL] if session_info.run_trials else [Phase.REAL]

    # auto_refresh=False prevents a background timer thread during runs
    with Live(table, console=rcon, auto_refresh=False) as live:
        for definition in tests:
            for phase in phases:
                controller = task.run_phase(
                    win, stimuli_obj, definition, phase, run_clock,
                    on_record=store.record, on_cue=tones.play,
                )
                result = controller.result()
                mean_rt = result.mean_reaction_time_ms
                rt_str = f"{mean_rt} ms" if mean_rt is not None else "—"
                phase_cell = "[yellow]trial[/yellow]" if phase is Phase.TRIAL else "[green]real[/green]"
                table.add_row(
                    definition.test_id,
                    phase_cell,
                    f"{definition.polarity.value} {definition.target}",
                    str(result.hits),
                    str(result.commission_misses),
                    str(result.omission_misses),
                    rt_str,
                    str(controller.restarts),
                )
                live.refresh()
                logging.exp(
                    f"{definition.test_id:<6} {phase.value:<5} hits={result.hits:2d}  "
                    f"commission={result.commission_misses:2d}  omission={result.omission_misses:2d}  "
                    f"mean_rt={rt_str}  restarts={controller.restarts}"
                )

    # ── RESULTS ──────────────────────────────────────────────────────────────
    rt_writer.close()
    summary = recorder.write_results(run_dir / f"results_{file_stem}.csv", store)
    run_key = recorder.write_session_json(run_dir, session_info, store)

    totals = summary.loc["total"]
    rcon.print(
        f"\n[bold]Battery complete:[/bold] hits={int(totals['hits'])}  "
        f"commission={int(totals['commission_misses'])}  omission={int(totals['omission_misses'])}  "
        f"mean RT=[cyan]{_format_rt(totals['mean_rt_ms'])}[/cyan]  key={run_key}"
    )
    logging.exp(f"Battery complete: key={run_key}")

    # ── END SCREEN ───────────────────────────────────────────────────────────
    stimuli_obj.end.draw()
    win.flip()
    psy_event.waitKeys(keyList=["escape", "space"])

    logging.flush()
    win.close()
    core.quit()


def _format_rt(value) -> str:
    """Format a possibly-missing mean RT cell from the summary frame."""
    import pandas as pd
    return "—" if pd.isna(value) else f"{int(value)} ms"


if __name__ == "__main__":
    run()
