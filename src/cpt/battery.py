"""
The ten sub-tests of the battery. Each one is the shared engine with a
different alphabet, designated symbol and polarity.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cpt import config


class Polarity(str, Enum):
    GO = "go"          # press only on the target
    NO_GO = "no-go"    # press on everything except the target


class Phase(str, Enum):
    TRIAL = "trial"
    REAL = "real"


@dataclass(frozen=True)
class TestDefinition:
    test_id: str
    alphabet: tuple[str, ...]
    target: str
    polarity: Polarity
    kind: str           # "shape" | "number"

    def __post_init__(self) -> None:
        if self.target not in self.alphabet:
            raise ValueError(f"{self.test_id}: target {self.target!r} not in {self.alphabet}")

    @property
    def number(self) -> int:
        return int(self.test_id.removeprefix("test"))

    def instruction(self) -> str:
        noun = "shape" if self.kind == "shape" else "number"
        if self.polarity is Polarity.GO:
            return f"Press SPACE whenever the {noun} {self.target} appears."
        return f"Press SPACE for every {noun} except {self.target}."


BATTERY: list[TestDefinition] = [
    TestDefinition("test1", config.SHAPES, "triangle", Polarity.GO, "shape"),
    TestDefinition("test2", config.SHAPES, "star", Polarity.GO, "shape"),
    TestDefinition("test3", config.SHAPES, "circle", Polarity.GO, "shape"),
    TestDefinition("test4", config.NUMBERS, "1", Polarity.GO, "number"),
    TestDefinition("test5", config.NUMBERS, "2", Polarity.GO, "number"),
    TestDefinition("test6", config.SHAPES_NO_GO, "circle", Polarity.NO_GO, "shape"),
    TestDefinition("test7", config.SHAPES_NO_GO, "star", Polarity.NO_GO, "shape"),
    TestDefinition("test8", config.SHAPES_NO_GO, "triangle", Polarity.NO_GO, "shape"),
    TestDefinition("test9", config.NUMBERS_NO_GO, "1", Polarity.NO_GO, "number"),
    TestDefinition("test10", config.NUMBERS_NO_GO, "3", Polarity.NO_GO, "number"),
]


def get_test(test_id: str) -> TestDefinition:
    for definition in BATTERY:
        if definition.test_id == test_id:
            return definition
    raise KeyError(f"Unknown test: {test_id}")
