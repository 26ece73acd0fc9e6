"""Task records and the ordered task list used by the schedulers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

Action = Callable[[], None]


class TaskState(enum.IntEnum):
    """Life-cycle state of a task."""

    RUNNING = 0
    READY = 1
    SUSPENDED = 2
    BLOCKED = 3
    DELETED = 4


class TaskType(enum.IntEnum):
    """How a task is released and repeated."""

    PERIODIC = 0
    APERIODIC = 1
    INSTANT_EXECUTE = 2
    BACKGROUND = 3
    UNINF_PERIODIC = 4
    NOT_FOUND = 5


_PERIODIC_TYPES = (TaskType.PERIODIC, TaskType.UNINF_PERIODIC)


@dataclass(eq=False)
class Task:
    """A schedulable unit of work and its bookkeeping."""

    task_num: int
    task_type: TaskType
    base_priority: int = 0
    execute_time: int = 0
    release_time: int = 0
    terminate_num: int = 0
    action: Optional[Action] = None
    position: int = 1
    priority: int = field(init=False)
    execute_time_left: int = field(init=False)
    state: TaskState = field(init=False)

    def __post_init__(self) -> None:
        self.priority = self.base_priority
        self.execute_time_left = self.execute_time
        if self.task_type == TaskType.INSTANT_EXECUTE:
            self.state = TaskState.SUSPENDED
        else:
            self.state = TaskState.READY
        if self.task_type not in _PERIODIC_TYPES:
            self.release_time = 0
        if self.task_type != TaskType.UNINF_PERIODIC:
            self.terminate_num = 0

    def run(self) -> bool:
        """Call the task's action once; return whether there was one to call."""
        if self.action is None:
            return False
        self.action()
        return True


class TaskList:
    """An ordered list of tasks with 1-based positions."""

    def __init__(self) -> None:
        self._tasks: list[Task] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        # Iterate over a snapshot so callers may modify the list while looping.
        return iter(list(self._tasks))

    def __contains__(self, task_num: object) -> bool:
        return self.find(task_num) is not None

    @property
    def head(self) -> Optional[Task]:
        """The first task, or None when the list is empty."""
        return self._tasks[0] if self._tasks else None

    def _renumber(self) -> None:
        for position, task in enumerate(self._tasks, start=1):
            task.position = position

    def add_task(
        self,
        position: int,
        task_num: int,
        task_type: TaskType,
        base_priority: int,
        execute_time: int,
        release_time: int,
        terminate_num: int,
        action: Optional[Action],
    ) -> Task:
        """Insert a new task before the given 1-based position and return it.

        A position past the end appends the task.
        """
        task = Task(
            task_num,
            TaskType(task_type),
            base_priority,
            execute_time,
            release_time,
            terminate_num,
            action,
        )
        if not self._tasks or position >= len(self._tasks) + 1:
            self._tasks.append(task)
        elif position < 1:
            raise IndexError(f"invalid task position {position}")
        else:
            self._tasks.insert(position - 1, task)
        self._renumber()
        return task

    def delete_task(self, position: Optional[int]) -> None:
        """Remove the task at a 1-based position; None is ignored."""
        if position is None or not self._tasks:
            return
        if position < 1:
            raise IndexError(f"invalid task position {position}")
        if len(self._tasks) == 1:
            self._tasks.clear()
        elif position <= len(self._tasks):
            del self._tasks[position - 1]
        self._renumber()

    def find(self, task_num: object) -> Optional[Task]:
        """Return the first task with this number, or None."""
        return next((t for t in self._tasks if t.task_num == task_num), None)

    def position_of(self, task_num: int) -> Optional[int]:
        """Return the 1-based position of a task, or None if absent."""
        task = self.find(task_num)
        return task.position if task is not None else None

    def state_of(self, task_num: int) -> TaskState:
        """Return a task's state; DELETED when it is not in the list."""
        task = self.find(task_num)
        return task.state if task is not None else TaskState.DELETED

    def set_state(self, task_num: int, state: TaskState) -> None:
        """Set a task's state; unknown tasks are ignored."""
        task = self.find(task_num)
        if task is not None:
            task.state = TaskState(state)

    def type_of(self, task_num: int) -> TaskType:
        """Return a task's type; NOT_FOUND when it is not in the list."""
        task = self.find(task_num)
        return task.task_type if task is not None else TaskType.NOT_FOUND

    def full_update(
        self,
        task_num: int,
        task_type: TaskType,
        priority: int,
        execute_time: int,
        release_time: int,
        terminate_num: int,
    ) -> None:
        """Replace a task's parameters and reset its remaining time."""
        task = self.find(task_num)
        if task is None:
            return
        task.task_type = TaskType(task_type)
        task.priority = priority
        task.execute_time = execute_time
        task.execute_time_left = execute_time
        task.release_time = release_time
        task.terminate_num = terminate_num


def copy_task(source: TaskList, target: TaskList, task_num: int) -> None:
    """Copy a task from one list to another, or refresh the copy already there."""
    task = source.find(task_num)
    if task is None:
        return
    if task_num not in target:
        target.add_task(
            len(target) + 1,
            task.task_num,
            task.task_type,
            task.base_priority,
            task.execute_time,
            task.release_time,
            task.terminate_num,
            task.action,
        )
    else:
        target.full_update(
            task_num,
            task.task_type,
            task.priority,
            task.execute_time,
            task.release_time,
            task.terminate_num,
        )