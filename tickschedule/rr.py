"""Round-robin scheduler with priority ageing, driven by a quantum timer."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from .rtc import IDLE_TASK, SLOT_TIMER
from .scheduler import Scheduler
from .tasks import Action, Task, TaskState, TaskType
from .timers import TimerMethod, TimerService, TimerUnit

logger = logging.getLogger(__name__)

_ULONG_MASK = 0xFFFFFFFF


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


class UpdateType(enum.IntEnum):
    """How an entry of the allocated list is changed."""

    ADD = 0
    DELETE = 1
    UPDATE = 2


@dataclass(eq=False)
class AllocatedTask:
    """Round-robin bookkeeping for a task that is waiting for quanta."""

    task_num: int = 0
    remaining_execute_time: int = 0
    last_check_time: int = 0
    remaining_quantums: int = 0
    executed_quantums: int = 0
    priority: int = 0


class RRScheduler(Scheduler):
    """Shares the processor between ready tasks in fixed-length quanta.

    Tasks are ordered by priority; a task that waits longer than
    ``increase_time`` ticks has its priority raised by one.
    """

    def __init__(self, timers: TimerService) -> None:
        super().__init__(timers)
        self.time_unit: Optional[TimerUnit] = None
        self.increase_time = 0
        self.previous_task_num = 0
        self.quantum_length = 0
        self.current_execute_task = IDLE_TASK
        self.allocated: list[AllocatedTask] = []
        self.checking_timer = False
        self._count = 0

    def on_tick(self) -> None:
        """Advance the global counter and flag that timers need checking."""
        self.timers.tick()
        self.checking_timer = True

    def timer_event(self) -> None:
        """Hook called after timers are handled on every tick; override it."""

    def _entry(self, task_num: int) -> Optional[AllocatedTask]:
        return next((e for e in self.allocated if e.task_num == task_num), None)

    def _pick(self, entry: AllocatedTask, now: int) -> None:
        entry.last_check_time = now
        self.current_execute_task = entry.task_num

    def schedule(self) -> None:
        """Choose the next task to run and age the priorities of waiting tasks."""
        allocated = self.allocated
        size = len(allocated)
        if self._count > size - 1:
            self._count = 0
        now = self.timers.global_counter
        if size == 0:
            self.current_execute_task = IDLE_TASK
            return
        if allocated[0].executed_quantums == 0 or size == 1:
            self._pick(allocated[0], now)
            self._count += 1
        else:
            chosen = next(
                (
                    e
                    for e in allocated[1:self._count]
                    if e.executed_quantums == 0 and e.remaining_quantums != 0
                ),
                None,
            )
            done = False
            if chosen is not None:
                self._pick(chosen, now)
                self._count += 1
                done = True
            if not done and self._count == 0:
                self._pick(allocated[0], now)
                done = True
                if allocated[0].remaining_quantums != 1:
                    self._count += 1
            if not done and self._count == size - 1:
                self._pick(allocated[self._count], now)
                done = True
                self._count = 0
            if not done and self._count < size:
                entry = allocated[self._count]
                self._pick(entry, now)
                if entry.remaining_quantums != 1:
                    self._count += 1
            if (now - allocated[0].last_check_time) & _ULONG_MASK > self.increase_time:
                self._count = 0
        for entry in allocated:
            if (now - entry.last_check_time) & _ULONG_MASK > self.increase_time:
                entry.priority += 1
                self.increase_priority(entry.task_num)
                entry.last_check_time = now

    def instant_event(self, event_task_num: int) -> None:
        """Run an INSTANT_EXECUTE task now and delay the current quantum."""
        event_task = self.task_list.find(event_task_num)
        if event_task is None:
            return
        if (
            event_task.task_type != TaskType.INSTANT_EXECUTE
            or event_task.task_num == self.current_execute_task
        ):
            return
        self.ready(event_task.task_num)
        now = self.timers.global_counter
        self.timers.add_timer(
            1, self.current_execute_task, TimerMethod.ONE_SHOT, now + event_task.execute_time
        )
        running = self.ready_list.find(self.current_execute_task)
        if running is None:
            raise RuntimeError(
                f"current task {self.current_execute_task} is not in the ready list"
            )
        if running.execute_time_left >= self.quantum_length:
            resume_at = (
                _ceil_div(now, self.quantum_length) * self.quantum_length
                + event_task.execute_time
            )
        else:
            resume_at = now + running.execute_time_left + event_task.execute_time
        logger.debug("task %d has %d ticks left", running.task_num, running.execute_time_left)
        self.timers.change_timer(SLOT_TIMER, resume_at)
        self.current_execute_task = event_task_num

    def add_task(
        self,
        event_task_num: int,
        task_type: TaskType,
        execute_time: int,
        priority: int,
        release_time: int,
        terminate_num: int,
        action: Optional[Action],
        execute_time_since_arrival: int,
    ) -> None:
        """Add a task now, or make it ready after execute_time_since_arrival ticks."""
        if self._entry(event_task_num) is not None:
            return
        if event_task_num in self.task_list:
            return
        self.create_task(
            event_task_num, task_type, priority, execute_time, release_time, terminate_num, action
        )
        if execute_time_since_arrival == 0:
            self.update_allocated(event_task_num, UpdateType.ADD)
            self.sort_allocated()
            return
        release_at = self.timers.global_counter + execute_time_since_arrival
        self.suspend(event_task_num)
        self.timers.add_timer(1, event_task_num, TimerMethod.ONE_SHOT, release_at)

    def handle_timers(self) -> None:
        """Act on every timer that has just ended."""
        self.timers.check()
        tasks = list(self.task_list)
        cursor = 0
        for timer in self.timers:
            if not (timer.end_flag and not timer.active):
                continue
            logger.debug("timer %d ended at %d", timer.timer_num, self.timers.global_counter)
            if timer.timer_num != SLOT_TIMER:
                # The search resumes where the previous timer's search stopped.
                while cursor < len(tasks):
                    task = tasks[cursor]
                    if task.task_num == timer.timer_num:
                        if task.state == TaskState.READY:
                            self.current_execute_task = task.task_num
                            break
                        if task.state in (TaskState.SUSPENDED, TaskState.BLOCKED):
                            self.ready(task.task_num)
                            self.update_allocated(task.task_num, UpdateType.ADD)
                            self.sort_allocated()
                            if len(self.allocated) == 1:
                                self.current_execute_task = SLOT_TIMER
                            break
                    cursor += 1
            elif not self.allocated:
                self.current_execute_task = IDLE_TASK
                self.timers.stop_timer(SLOT_TIMER)
            else:
                self.current_execute_task = SLOT_TIMER
            if timer.method == TimerMethod.ONE_SHOT:
                self.timers.delete_timer(timer.position)
            else:
                timer.end_flag = False
        self.timer_event()

    def update_allocated(self, task_num: int, update_type: UpdateType) -> None:
        """Add, remove or refresh a task's entry in the allocated list."""
        update_type = UpdateType(update_type)
        task = self.ready_list.find(task_num)
        if update_type == UpdateType.ADD:
            if task is None:
                raise LookupError(f"task {task_num} is not in the ready list")
            self.allocated.append(
                AllocatedTask(
                    task_num=task_num,
                    remaining_execute_time=task.execute_time_left,
                    last_check_time=0,
                    remaining_quantums=_ceil_div(task.execute_time_left, self.quantum_length),
                    executed_quantums=0,
                    priority=task.priority,
                )
            )
        elif update_type == UpdateType.DELETE:
            entry = self._entry(task_num)
            if entry is not None:
                self.allocated.remove(entry)
                self.sort_allocated()
        else:
            entry = self._entry(task_num)
            if entry is None:
                return
            if task is None:
                raise LookupError(f"task {task_num} is not in the ready list")
            entry.remaining_execute_time = task.execute_time_left
            entry.remaining_quantums = _ceil_div(task.execute_time_left, self.quantum_length)
            entry.priority = task.priority
            entry.executed_quantums = _ceil_div(
                task.execute_time - task.execute_time_left, self.quantum_length
            )

    def sort_allocated(self) -> None:
        """Order the allocated list by priority, highest first, keeping ties in place."""
        self.allocated.sort(key=lambda entry: -entry.priority)

    def stop_task(self, task_num: int) -> None:
        """Suspend a ready task and drop it from the allocated list."""
        if self.ready_list.find(task_num) is None:
            return
        self.task_list.set_state(task_num, TaskState.SUSPENDED)
        self.ready_list.set_state(task_num, TaskState.SUSPENDED)
        self.update_allocated(task_num, UpdateType.DELETE)

    def execute(self) -> None:
        """Run the current task for its quantum, or pick the next one."""
        if self.current_execute_task == IDLE_TASK:
            self._run_background()
        elif self.current_execute_task == SLOT_TIMER:
            self._next_quantum()
        else:
            task = next(
                (
                    t
                    for t in self.ready_list
                    if t.task_num == self.current_execute_task and t.state == TaskState.READY
                ),
                None,
            )
            if task is None:
                raise RuntimeError(f"current task {self.current_execute_task} is not ready")
            self._run(task)

    def _run_background(self) -> None:
        background = next(
            (t for t in self.ready_list if t.task_type == TaskType.BACKGROUND), None
        )
        if background is None:
            if self.checking_timer:
                self.handle_timers()
                self.checking_timer = False
            return
        while True:
            background.action()
            if not self.checking_timer:
                continue
            self.handle_timers()
            self.checking_timer = False
            if self.current_execute_task != IDLE_TASK or self.allocated:
                if self.allocated:
                    self.current_execute_task = SLOT_TIMER
                break

    def _run(self, task: Task) -> None:
        task.state = TaskState.RUNNING
        self.task_list.set_state(task.task_num, TaskState.RUNNING)
        while True:
            task.action()
            if not self.checking_timer:
                continue
            task.execute_time_left -= 10 if self.timers.global_counter == 10 else 1
            self.handle_timers()
            self.checking_timer = False
            if self.current_execute_task != task.task_num or task.state != TaskState.RUNNING:
                if self.current_execute_task not in (task.task_num, SLOT_TIMER):
                    task.state = TaskState.READY
                    self.task_list.set_state(task.task_num, TaskState.READY)
                break

        if task.state == TaskState.SUSPENDED:
            if self.current_execute_task == task.task_num:
                self.timers.change_timer(
                    SLOT_TIMER, self.timers.global_counter + self.quantum_length
                )
                self.schedule()
            self.suspend(task.task_num)
        elif task.state == TaskState.RUNNING:
            self._end_of_quantum(task)
        elif task.state == TaskState.READY:
            self.update_allocated(task.task_num, UpdateType.UPDATE)
            self.sort_allocated()
        elif task.state == TaskState.BLOCKED:
            self.update_allocated(task.task_num, UpdateType.DELETE)
            self.timers.change_timer(SLOT_TIMER, self.timers.global_counter + self.quantum_length)
            self.schedule()

    def _end_of_quantum(self, task: Task) -> None:
        task.state = TaskState.READY
        self.task_list.set_state(task.task_num, TaskState.READY)
        if task.execute_time_left > 0:
            self.update_allocated(task.task_num, UpdateType.UPDATE)
            self.sort_allocated()
            return
        self.update_allocated(task.task_num, UpdateType.DELETE)
        self.reset_priority(task.task_num)
        if task.task_type in (TaskType.PERIODIC, TaskType.UNINF_PERIODIC):
            if task.release_time == 0:
                task.state = TaskState.READY
                self.task_list.set_state(task.task_num, TaskState.READY)
                task.execute_time_left = task.execute_time
                task.priority = task.base_priority
                self.update_allocated(task.task_num, UpdateType.UPDATE)
                return
            task.state = TaskState.BLOCKED
            task.execute_time_left = task.execute_time
            self.task_list.set_state(task.task_num, TaskState.BLOCKED)
            release_at = self.timers.global_counter + task.release_time
            if self.timers.find(task.task_num) is None:
                self.timers.add_timer(1, task.task_num, TimerMethod.AUTO_RELOAD, release_at)
            else:
                self.timers.change_timer(task.task_num, release_at)
            if task.task_type == TaskType.UNINF_PERIODIC:
                task.terminate_num -= 1
                if task.terminate_num == 0:
                    self.suspend(task.task_num)
        elif task.task_type in (TaskType.APERIODIC, TaskType.INSTANT_EXECUTE):
            self.suspend(task.task_num)

    def _next_quantum(self) -> None:
        self.schedule()
        if not self.allocated:
            return
        now = self.timers.global_counter
        if self.current_execute_task == IDLE_TASK:
            self.timers.change_timer(SLOT_TIMER, now + self.quantum_length)
            return
        if len(self.allocated) == 1:
            self.timers.change_timer(SLOT_TIMER, now + self.allocated[0].remaining_execute_time)
            return
        entry = self._entry(self.current_execute_task)
        if entry is None or entry.remaining_quantums != 1:
            self.timers.change_timer(SLOT_TIMER, now + self.quantum_length)
        else:
            self.timers.change_timer(SLOT_TIMER, now + entry.remaining_execute_time)

    def update_and_ready(
        self,
        task_num: int,
        task_type: TaskType,
        priority: int,
        execute_time: int,
        release_time: int,
        terminate_num: int,
    ) -> None:
        """Give an idle task new parameters and make it ready to run."""
        if task_num not in self.task_list:
            return
        if task_type == TaskType.INSTANT_EXECUTE:
            return
        if self.task_list.state_of(task_num) in (TaskState.RUNNING, TaskState.READY):
            return
        self.task_list.full_update(
            task_num, task_type, priority, execute_time, release_time, terminate_num
        )
        if task_num in self.ready_list:
            self.ready_list.full_update(
                task_num, task_type, priority, execute_time, release_time, terminate_num
            )
        self.ready(task_num)
        self.update_allocated(task_num, UpdateType.ADD)
        self.sort_allocated()

    def task_delay(self, task_num: int, delay_time: int) -> None:
        """Block a ready task until delay_time ticks from now."""
        if task_num not in self.task_list:
            return
        self.update_allocated(task_num, UpdateType.DELETE)
        self.sort_allocated()
        task = self.ready_list.find(task_num)
        if task is None:
            return
        wake_at = self.timers.global_counter + delay_time
        if self.timers.find(task_num) is not None:
            self.timers.change_timer(task_num, wake_at)
        else:
            self.timers.add_timer(1, task.task_num, TimerMethod.ONE_SHOT, wake_at)
        task.state = TaskState.BLOCKED
        self.task_list.set_state(task.task_num, TaskState.BLOCKED)

    def change_ready_time(self, task_num: int, ready_time: int) -> None:
        """Move a task's timer to fire ready_time ticks from now."""
        timer = self.timers.find(task_num)
        if timer is not None:
            timer.compare_time = self.timers.global_counter + ready_time

    def begin(self, quantum_length: int, increase_time: int, time_unit: TimerUnit) -> None:
        """Set the quantum, allocate every ready task and start the quantum timer."""
        self.quantum_length = quantum_length
        self.increase_time = increase_time
        for task in self.ready_list:
            self.update_allocated(task.task_num, UpdateType.ADD)
        self.sort_allocated()
        self.schedule()
        self.time_unit = TimerUnit(time_unit)
        self.timers.add_timer(1, SLOT_TIMER, TimerMethod.AUTO_RELOAD, self.quantum_length)