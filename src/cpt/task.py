"""
Frame loop that drives one RunController on a PsychoPy window.

Per frame: pending response keys are handed to the controller with their own
timestamps, due timers and round ticks are fired, the current view is drawn,
and on the flip that first shows a round's stimulus the reaction-time origin
is captured through win.callOnFlip.
No rendering objects are built here; no data is written here.
"""
from __future__ import annotations

import random

from psychopy import core, event as psy_event, logging, visual

from cpt import config
from cpt.battery import Phase, TestDefinition
from cpt.display import Stimuli, draw_instructions, draw_view
from cpt.runtime import RunConfig, RunController, build_controller


def run_instructions(
    win: visual.Window,
    stimuli: Stimuli,
    definition: TestDefinition,
    phase: Phase,
) -> None:
    """Show the test's instruction until CONTINUE_KEY is pressed."""
    label = "Practice" if phase is Phase.TRIAL else "Test"
    text = f"{label} {definition.number}\n\n{definition.instruction()}"
    psy_event.clearEvents()
    while True:
        draw_instructions(stimuli, text)
        win.flip()
        if psy_event.getKeys(keyList=[config.CONTINUE_KEY]):
            break
        _check_quit()


def _mark_onset(controller: RunController, run_clock: core.Clock, round_n: int) -> None:
    controller.mark_onset(round_n, run_clock.getTime())


def run_controller(
    win: visual.Window,
    stimuli: Stimuli,
    controller: RunController,
    run_clock: core.Clock,
) -> RunController:
    """Run until the controller has handed control back (advance fired)."""
    psy_event.clearEvents()
    controller.start(run_clock.getTime())
    shown: tuple[int, int] | None = None   # (restarts, round_n) already scheduled for onset

    while not controller.done:
        keys = psy_event.getKeys(keyList=[config.RESPONSE_KEY], timeStamped=run_clock)
        for _key_name, t in keys:
            controller.press(t)

        controller.update(run_clock.getTime())
        view = controller.view()
        draw_view(stimuli, view)

        if view.symbol is not None and view.message is None:
            key = (controller.restarts, view.round_n)
            if key != shown:
                win.callOnFlip(_mark_onset, controller, run_clock, view.round_n)
                shown = key
        win.flip()

        _check_quit()

    return controller


def run_phase(
    win: visual.Window,
    stimuli: Stimuli,
    definition: TestDefinition,
    phase: Phase,
    run_clock: core.Clock,
    *,
    on_record=None,
    on_cue=None,
    run_config: RunConfig | None = None,
    rng: random.Random | None = None,
) -> RunController:
    """Instructions, then one trial or real run of `definition`."""
    controller = build_controller(
        definition, phase, run_config, rng=rng, on_record=on_record, on_cue=on_cue,
    )
    logging.exp(
        f"-> {definition.test_id} {phase.value}: {definition.polarity.value} "
        f"target={definition.target} alphabet={','.join(definition.alphabet)}"
    )
    run_instructions(win, stimuli, definition, phase)
    return run_controller(win, stimuli, controller, run_clock)


def _check_quit() -> None:
    """Quit if a quit key is pressed."""
    keys = psy_event.getKeys(keyList=config.QUIT_KEYS)
    if keys:
        core.quit()
