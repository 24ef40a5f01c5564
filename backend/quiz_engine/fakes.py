"""Deterministic clock and scheduler for driving timers in tests."""

from __future__ import annotations

from typing import Any, Callable, List, Tuple

from .models import Question
from .scheduler import ScheduledTask


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += seconds


class FakeScheduler:
    """Collects scheduled callbacks and fires them when the clock is advanced."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.scheduled: List[Tuple[float, ScheduledTask, Callable[..., Any], tuple]] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any, label: str = "") -> ScheduledTask:
        task = ScheduledTask(delay, label)
        self.scheduled.append((self.clock.now + delay, task, callback, args))
        return task

    def pending(self) -> List[ScheduledTask]:
        return [task for _, task, _, _ in self.scheduled if task.pending]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running due callbacks in order. Returns how many ran."""
        target = self.clock.now + seconds
        ran = 0
        while True:
            due = sorted(
                (entry for entry in self.scheduled if entry[1].pending and entry[0] <= target),
                key=lambda entry: entry[0],
            )
            if not due:
                break
            when, task, callback, args = due[0]
            self.clock.now = max(self.clock.now, when)
            task.run(callback, *args)
            ran += 1
        self.clock.now = target
        return ran


def make_question(qid: int, correct: int = 0, time_limit: float = 20, points: int = 1000) -> Question:
    return Question(
        id=qid,
        text=f"Question {qid}?",
        options=["A", "B", "C", "D"],
        correct_option_index=correct,
        time_limit_seconds=time_limit,
        points=points,
    )
