"""
All task constants. No imports from other cpt modules.
All time values are in seconds unless the name includes a unit suffix.
"""

# Round cadence
ROUND_INTERVAL_MS: int = 1500

# Run structure
REAL_ROUND_COUNT: int = 20
TRIAL_MISTAKE_CEILING: int = 3      # commission + omission misses before a trial restarts
TRIAL_HIT_TARGET: int = 3           # hits that end a trial successfully
TRIAL_SEQUENCE_LEN: int = 100
TRIAL_EXTENSION_LEN: int = 50

# Real-sequence composition
GO_TARGET_SHARE: float = 0.4        # 8 of 20 rounds show the target in go tests
REJECTION_ATTEMPTS: int = 1000

# Lead-in, countdown and message durations (seconds)
LEAD_IN_S: float = 1.5
COUNTDOWN_FROM: int = 3
COUNTDOWN_STEP_S: float = 1.0
START_HOLD_S: float = 0.5
COMPLETION_DELAY_S: float = 2.0
RESTART_DELAY_S: float = 2.5

# On-screen messages
LEAD_IN_TEXT: dict[str, str] = {"trial": "Trial starting...", "real": "Real test starting..."}
START_TEXT: str = "START"
TRIAL_DONE_TEXT: str = "Trial finished!"
REAL_DONE_TEXT: str = "Test is done!"
RESTART_TEXT: str = "Too many mistakes, restarting the trial"

# Tone cues: name -> (frequency Hz, duration s)
TONES: dict[str, tuple[int, float]] = {
    "countdown": (600, 0.150),
    "start": (800, 0.300),
    "response": (400, 0.050),
}
TONE_VOLUME: float = 0.3

# Stimulus alphabets
SHAPES: tuple[str, ...] = ("circle", "star", "triangle")
SHAPES_NO_GO: tuple[str, ...] = ("circle", "star", "triangle", "square")
NUMBERS: tuple[str, ...] = ("1", "2", "3")
NUMBERS_NO_GO: tuple[str, ...] = ("1", "2", "3", "4")

# Keyboard
RESPONSE_KEY: str = "space"
QUIT_KEYS: list[str] = ["escape"]
CONTINUE_KEY: str = "space"

# Window
BACKGROUND_COLOR: tuple[float, float, float] = (-1.0, -1.0, -1.0)
STIMULUS_COLOR: str = "white"
