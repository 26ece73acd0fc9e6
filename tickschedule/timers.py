"""Software timers driven by a shared tick counter."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional


class TimerUnit(enum.IntEnum):
    """Length of one tick of the global counter."""

    MILLISECOND = 1
    HUNDRED_MILLISECONDS = 2
    SECOND = 3


class TimerMethod(enum.IntEnum):
    """Whether a timer is removed or kept after it fires."""

    ONE_SHOT = 0
    AUTO_RELOAD = 1


@dataclass(eq=False)
class SoftwareTimer:
    """A timer that fires when the global counter reaches compare_time."""

    timer_num: int
    method: TimerMethod
    compare_time: int
    position: int = 1
    end_flag: bool = False
    active: bool = True


class TimerService:
    """Owns the global tick counter and an ordered list of software timers."""

    def __init__(self) -> None:
        self.global_counter = 0
        self._timers: list[SoftwareTimer] = []

    def __len__(self) -> int:
        return len(self._timers)

    def __iter__(self) -> Iterator[SoftwareTimer]:
        # Iterate over a snapshot so timers may be deleted while looping.
        return iter(list(self._timers))

    @property
    def head(self) -> Optional[SoftwareTimer]:
        """The first timer, or None when there are none."""
        return self._timers[0] if self._timers else None

    def tick(self) -> int:
        """Advance the global counter by one and return it."""
        self.global_counter += 1
        return self.global_counter

    def _renumber(self) -> None:
        for position, timer in enumerate(self._timers, start=1):
            timer.position = position

    def add_timer(
        self, position: int, timer_num: int, method: TimerMethod, compare_time: int
    ) -> SoftwareTimer:
        """Insert a new active timer before the given 1-based position."""
        timer = SoftwareTimer(timer_num, TimerMethod(method), compare_time)
        if not self._timers or position >= len(self._timers) + 1:
            self._timers.append(timer)
        elif position < 1:
            raise IndexError(f"invalid timer position {position}")
        else:
            self._timers.insert(position - 1, timer)
        self._renumber()
        return timer

    def delete_timer(self, position: Optional[int]) -> None:
        """Remove the timer at a 1-based position; None is ignored."""
        if position is None or not self._timers:
            return
        if position < 1:
            raise IndexError(f"invalid timer position {position}")
        if len(self._timers) == 1:
            self._timers.clear()
        elif position <= len(self._timers):
            del self._timers[position - 1]
        self._renumber()

    def stop_timer(self, timer_num: int) -> None:
        """Deactivate a timer without marking it as ended."""
        timer = self.find(timer_num)
        if timer is not None:
            timer.active = False

    def end_timer(self, timer_num: int) -> None:
        """Mark a timer as ended now."""
        timer = self.find(timer_num)
        if timer is not None:
            timer.end_flag = True
            timer.active = False
            timer.compare_time = self.global_counter

    def start_all(self) -> None:
        """Activate every timer."""
        for timer in self._timers:
            timer.active = True

    def start_timer(self, timer_num: int) -> None:
        """Activate a timer and clear its end flag."""
        timer = self.find(timer_num)
        if timer is not None:
            timer.active = True
            timer.end_flag = False

    def check(self) -> None:
        """Mark every active timer whose compare time is now as ended."""
        for timer in self._timers:
            if timer.active and timer.compare_time == self.global_counter:
                timer.end_flag = True
                timer.active = False

    def find(self, timer_num: int) -> Optional[SoftwareTimer]:
        """Return the first timer with this number, or None."""
        return next((t for t in self._timers if t.timer_num == timer_num), None)

    def position_of(self, timer_num: int) -> Optional[int]:
        """Return the 1-based position of a timer, or None if absent."""
        timer = self.find(timer_num)
        return timer.position if timer is not None else None

    def change_timer(self, timer_num: int, compare_time: int) -> None:
        """Set a new compare time and rearm the timer."""
        timer = self.find(timer_num)
        if timer is not None:
            timer.compare_time = compare_time
            timer.active = True
            timer.end_flag = False

    def compare_time_of(self, timer_num: int) -> int:
        """Return a timer's compare time; KeyError if there is no such timer."""
        timer = self.find(timer_num)
        if timer is None:
            raise KeyError(timer_num)
        return timer.compare_time