"""
Short tone cues for the countdown, run start and response acknowledgement.

Cues are best effort: if the PsychoPy sound backend cannot be loaded or a
tone fails to play, the failure is logged and the task carries on.
"""
from __future__ import annotations

from psychopy import logging

from cpt import config


class AudioUnavailable(RuntimeError):
    """The sound backend could not be initialised."""


class ToneCues:
    def __init__(self, tones: dict[str, tuple[int, float]] | None = None, enabled: bool = True) -> None:
        self._tones = dict(config.TONES if tones is None else tones)
        self._enabled = enabled
        self._sounds: dict[str, object] = {}
        self._failed = False

    def _load(self) -> None:
        try:
            from psychopy import sound
            sounds = {
                name: sound.Sound(value=hz, secs=secs, volume=config.TONE_VOLUME)
                for name, (hz, secs) in self._tones.items()
            }
        except Exception as exc:
            raise AudioUnavailable(f"psychopy.sound backend unavailable: {exc!r}") from exc
        self._sounds = sounds

    def play(self, name: str) -> None:
        """Fire-and-forget; never raises."""
        if not self._enabled or self._failed:
            return
        try:
            if not self._sounds:
                self._load()
            tone = self._sounds.get(name)
            if tone is None:
                logging.warning(f"Unknown tone cue: {name!r}")
                return
            tone.stop()
            tone.play()
        except AudioUnavailable as exc:
            self._failed = True
            logging.warning(f"Audio cues disabled: {exc}")
        except Exception as exc:
            logging.warning(f"Tone {name!r} failed: {exc!r}")
