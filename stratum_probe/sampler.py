from dataclasses import dataclass
from typing import Optional, Sequence


NO_HEIGHT = -1


@dataclass
class SamplerState:
    last_height: int = NO_HEIGHT


@dataclass
class WindowOutcome:
    continuity: int
    updated: int
    current: int
    last_height: int
    observed: int


def check_continuity(blocks: Sequence[int]) -> int:
    if len(blocks) <= 1:
        return 1

    # Heights repeat when a block is rebroadcast; only the distinct set counts.
    distinct = sorted(set(blocks))
    for index in range(1, len(distinct)):
        if distinct[index] != distinct[index - 1] + 1:
            return 0
    return 1


def latest_block(blocks: Sequence[int]) -> int:
    if not blocks:
        return NO_HEIGHT
    return blocks[-1]


class WindowSampler:
    """Turns the heights seen in one window into the continuity/update pair.

    ``updated`` compares the window's terminal height against the terminal
    height stored after the previous window. An empty window has no terminal
    height (reported as ``-1``) and never counts as updated, so a stalled
    source settles on ``updated = 0``. Only a positive terminal height that
    differs from the stored one replaces it.
    """

    def __init__(self, state: Optional[SamplerState] = None) -> None:
        self.state = state or SamplerState()

    @property
    def last_height(self) -> int:
        return self.state.last_height

    def evaluate(self, blocks: Sequence[int]) -> WindowOutcome:
        continuity = check_continuity(blocks)
        current = latest_block(blocks)

        updated = 1
        if not blocks or current == self.state.last_height:
            updated = 0
        elif current > 0:
            self.state.last_height = current

        return WindowOutcome(
            continuity=continuity,
            updated=updated,
            current=current,
            last_height=self.state.last_height,
            observed=len(blocks),
        )
