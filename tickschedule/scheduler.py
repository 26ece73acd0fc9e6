"""Task bookkeeping shared by the concrete schedulers."""

from __future__ import annotations

from typing import Optional

from .tasks import Action, Task, TaskList, TaskState, TaskType, copy_task
from .timers import TimerService


class Scheduler:
    """Keeps the list of all tasks and the list of tasks that may run."""

    def __init__(self, timers: TimerService) -> None:
        self.timers = timers
        self.task_list = TaskList()
        self.ready_list = TaskList()

    def create_task(
        self,
        task_num: int,
        task_type: TaskType,
        base_priority: int,
        execute_time: int,
        release_time: int,
        terminate_num: int,
        action: Optional[Action],
    ) -> Task:
        """Create a task; every type except INSTANT_EXECUTE is also made ready."""
        task = self.task_list.add_task(
            len(self.task_list) + 1,
            task_num,
            task_type,
            base_priority,
            execute_time,
            release_time,
            terminate_num,
            action,
        )
        if task.task_type != TaskType.INSTANT_EXECUTE:
            copy_task(self.task_list, self.ready_list, task_num)
        return task

    def create_background_task(self, task_num: int, action: Optional[Action]) -> Task:
        """Create a background task that runs when nothing else is scheduled."""
        task = self.task_list.add_task(
            len(self.task_list) + 1, task_num, TaskType.BACKGROUND, 0, 0, 0, 0, action
        )
        copy_task(self.task_list, self.ready_list, task_num)
        return task

    def delete_task(self, task_num: int) -> None:
        """Remove a task from every list and drop its timer."""
        self.task_list.delete_task(self.task_list.position_of(task_num))
        ready_position = self.ready_list.position_of(task_num)
        if ready_position is not None:
            self.ready_list.delete_task(ready_position)
            self.timers.delete_timer(self.timers.position_of(task_num))

    def increase_priority(self, task_num: int) -> None:
        """Raise a task's current priority by one."""
        task = self.task_list.find(task_num)
        if task is None:
            return
        new_priority = task.priority + 1
        task.priority = new_priority
        ready_task = self.ready_list.find(task_num)
        if ready_task is not None:
            ready_task.priority = new_priority

    def reset_priority(self, task_num: int) -> None:
        """Return a task's priority to its base priority."""
        task = self.task_list.find(task_num)
        if task is None:
            return
        task.priority = task.base_priority
        ready_task = self.ready_list.find(task_num)
        if ready_task is not None:
            ready_task.priority = task.base_priority

    def suspend(self, task_num: int) -> None:
        """Take a task out of the ready list and drop its timer."""
        ready_position = self.ready_list.position_of(task_num)
        if ready_position is not None:
            self.ready_list.delete_task(ready_position)
            timer_position = self.timers.position_of(task_num)
            if timer_position is not None:
                self.timers.delete_timer(timer_position)
        self.task_list.set_state(task_num, TaskState.SUSPENDED)

    def ready(self, task_num: int) -> None:
        """Make a known task ready, adding it to the ready list if needed."""
        if task_num not in self.task_list:
            return
        self.task_list.set_state(task_num, TaskState.READY)
        if task_num not in self.ready_list:
            copy_task(self.task_list, self.ready_list, task_num)
        self.ready_list.set_state(task_num, TaskState.READY)