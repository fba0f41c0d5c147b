"""
PsychoPy visual component construction and draw helpers.
No clocks, no response logic, no I/O.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from psychopy import visual

from cpt import config
from cpt.runtime import RunView


@dataclass
class Stimuli:
    win: visual.Window
    shapes: dict[str, visual.BaseVisualStim]
    number: visual.TextStim
    markers: tuple[visual.Circle, visual.Circle]
    message: visual.TextStim
    countdown: visual.TextStim
    instructions: visual.TextStim
    instr_continue: visual.TextStim
    end: visual.TextStim


def star_vertices(outer: float, inner: float, points: int = 5) -> list[tuple[float, float]]:
    """Alternate outer/inner radii, first point straight up."""
    verts = []
    for i in range(points * 2):
        r = outer if i % 2 == 0 else inner
        angle = math.pi / 2 + i * math.pi / points
        verts.append((r * math.cos(angle), r * math.sin(angle)))
    return verts


def build_stimuli(win: visual.Window) -> Stimuli:
    """Construct all visual stimuli and return a Stimuli dataclass."""
    y_scr = 1.0
    win_res = win.size
    x_scr = float(win_res[0]) / float(win_res[1])
    font_h = y_scr / 25
    wrap_w = x_scr / 1.5
    size = 0.15
    col = config.STIMULUS_COLOR

    shapes: dict[str, visual.BaseVisualStim] = {
        "circle": visual.Circle(
            win, name="circle", radius=size, fillColor=col, lineColor=col, autoLog=False,
        ),
        "star": visual.ShapeStim(
            win, name="star", vertices=star_vertices(size * 1.2, size * 0.5),
            fillColor=col, lineColor=col, autoLog=False,
        ),
        "triangle": visual.Polygon(
            win, name="triangle", edges=3, radius=size * 1.2, fillColor=col, lineColor=col,
            autoLog=False,
        ),
        "square": visual.Rect(
            win, name="square", width=size * 1.8, height=size * 1.8, fillColor=col, lineColor=col,
            autoLog=False,
        ),
    }

    number = visual.TextStim(
        win, name="number", pos=(0, 0), height=size * 2, color=col, bold=True, autoLog=False,
    )

    markers = (
        visual.Circle(win, name="marker_left", radius=0.02, pos=(-x_scr / 4, 0),
                      fillColor=col, lineColor=col, autoLog=False),
        visual.Circle(win, name="marker_right", radius=0.02, pos=(x_scr / 4, 0),
                      fillColor=col, lineColor=col, autoLog=False),
    )

    message = visual.TextStim(
        win, name="message", pos=(0, 0), height=font_h * 1.5, color=col, wrapWidth=wrap_w,
        autoLog=False,
    )

    countdown = visual.TextStim(
        win, name="countdown", pos=(0, 0), height=font_h * 4, color=col, bold=True,
        autoLog=False,
    )

    instructions = visual.TextStim(
        win, name="instructions", pos=(0, y_scr / 10), height=font_h, color=col,
        wrapWidth=wrap_w, autoLog=False,
    )

    instr_continue = visual.TextStim(
        win, name="instr_continue", text="Press SPACE to continue.",
        pos=(0, -y_scr / 4), height=font_h, color=col, autoLog=False,
    )

    end = visual.TextStim(
        win, name="end", pos=(0, 0), text="Thank you!", height=font_h, color=col,
        wrapWidth=wrap_w, autoLog=False,
    )

    return Stimuli(
        win=win,
        shapes=shapes,
        number=number,
        markers=markers,
        message=message,
        countdown=countdown,
        instructions=instructions,
        instr_continue=instr_continue,
        end=end,
    )


def draw_symbol(stimuli: Stimuli, symbol: str) -> None:
    for marker in stimuli.markers:
        marker.draw()
    shape = stimuli.shapes.get(symbol)
    if shape is not None:
        shape.draw()
    else:
        stimuli.number.text = symbol
        stimuli.number.draw()


def draw_message(stimuli: Stimuli, text: str) -> None:
    stimuli.message.text = text
    stimuli.message.draw()


def draw_countdown(stimuli: Stimuli, label: str) -> None:
    stimuli.countdown.text = label
    stimuli.countdown.draw()


def draw_instructions(stimuli: Stimuli, text: str) -> None:
    stimuli.instructions.text = text
    stimuli.instructions.draw()
    stimuli.instr_continue.draw()


def draw_view(stimuli: Stimuli, view: RunView) -> None:
    """Messages take precedence over the countdown, which takes precedence over the stimulus."""
    if view.message:
        draw_message(stimuli, view.message)
    elif view.countdown:
        draw_countdown(stimuli, view.countdown)
    elif view.symbol is not None:
        draw_symbol(stimuli, view.symbol)
