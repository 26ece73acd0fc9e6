"""Run-to-completion scheduler that hands out time in task-length slots."""

from __future__ import annotations

from typing import Callable, Optional

from .scheduler import Scheduler
from .tasks import Action, Task, TaskState, TaskType
from .timers import TimerMethod, TimerService, TimerUnit

IDLE_TASK = 0
"""Task number meaning "nothing scheduled"; also the idle timer's number."""

SLOT_TIMER = 0xFE
"""Number of the timer that marks the end of the current slot."""

_ULONG_MASK = 0xFFFFFFFF


class RTCScheduler(Scheduler):
    """Runs ready tasks one after another, each for its execute time.

    Ticks arrive through :meth:`on_tick`, which may be called from a task's
    action or from another thread; :meth:`execute` keeps calling the current
    task's action until a tick hands the processor to another task.
    """

    def __init__(self, timers: TimerService) -> None:
        super().__init__(timers)
        self.current_execute_task = IDLE_TASK
        self.time_unit: Optional[TimerUnit] = None
        self.checking_timer = False
        self.port_event_flag = False
        self.timer_event_handler: Optional[Callable[[], None]] = None
        self.port_event_handler: Optional[Callable[[], None]] = None

    def on_tick(self) -> None:
        """Advance the global counter and flag that timers need checking."""
        self.timers.tick()
        self.checking_timer = True

    def raise_port_event(self) -> None:
        """Flag that a port event is waiting to be handled."""
        self.port_event_flag = True

    def timer_event(self) -> bool:
        """Call the timer-event handler, if one is set; return whether it ran."""
        if self.timer_event_handler is None:
            return False
        self.timer_event_handler()
        return True

    def port_event(self) -> bool:
        """Call the port-event handler, if one is set; return whether it ran."""
        if self.port_event_handler is None:
            return False
        self.port_event_handler()
        return True

    def _service_flags(self) -> None:
        if self.checking_timer:
            self.timer_event()
            self.handle_timers()
            self.checking_timer = False
        if self.port_event_flag:
            self.port_event_flag = False
            self.port_event()

    def timer_set(self) -> None:
        """Lay out the start time of every ready task and the slot timer."""
        tasks = list(self.ready_list)
        if not tasks:
            raise RuntimeError("no ready tasks to lay out")
        counter = self.timers.global_counter
        time_set_var = 0
        count = 1
        if len(tasks) == 1:
            time_set_var = tasks[0].execute_time + counter
        else:
            for index, task in enumerate(tasks):
                is_last = index == len(tasks) - 1
                if index == 0:
                    time_set_var = counter
                else:
                    time_set_var += tasks[index - 1].execute_time
                    keeps_running = (
                        task.execute_time_left > 0
                        or task.task_type == TaskType.PERIODIC
                        or (
                            task.task_type == TaskType.UNINF_PERIODIC
                            and task.terminate_num > 0
                            and task.release_time == 0
                        )
                    )
                    if keeps_running:
                        if self.timers.find(task.task_num) is None and task.state == TaskState.READY:
                            if task.task_type == TaskType.PERIODIC:
                                self.timers.add_timer(
                                    count, task.task_num, TimerMethod.AUTO_RELOAD, time_set_var
                                )
                            elif task.task_type == TaskType.APERIODIC:
                                self.timers.add_timer(
                                    count, task.task_num, TimerMethod.ONE_SHOT, time_set_var
                                )
                        if self.timers.find(task.task_num) is not None:
                            self.timers.change_timer(task.task_num, time_set_var)
                        count += 1
                if (
                    is_last
                    and (task.execute_time_left > 0 or task.task_type == TaskType.PERIODIC)
                    and task.release_time == 0
                ):
                    time_set_var += task.execute_time
        if self.timers.find(SLOT_TIMER) is None:
            self.timers.add_timer(count, SLOT_TIMER, TimerMethod.AUTO_RELOAD, time_set_var)
        else:
            self.timers.change_timer(SLOT_TIMER, time_set_var)

    def instant_event(self, event_task_num: int) -> None:
        """Run an INSTANT_EXECUTE task now, pushing every other slot back."""
        event_task = self.task_list.find(event_task_num)
        if event_task is None:
            return
        if (
            event_task.task_type != TaskType.INSTANT_EXECUTE
            or event_task.task_num == self.current_execute_task
        ):
            return
        self.ready(event_task.task_num)
        resume_at = self.timers.global_counter + event_task.execute_time
        if self.current_execute_task != IDLE_TASK:
            for running in self.ready_list:
                if (
                    running.task_num == self.current_execute_task
                    and running.state == TaskState.RUNNING
                ):
                    self._arm_one_shot(running.task_num, resume_at)
                    break
        else:
            self._arm_one_shot(IDLE_TASK, resume_at)

        for timer in self.timers:
            shift = (
                not timer.end_flag
                and timer.timer_num != self.current_execute_task
                and self.task_list.state_of(timer.timer_num) == TaskState.READY
            ) or timer.timer_num == SLOT_TIMER
            if shift:
                timer.compare_time += event_task.execute_time
        self.current_execute_task = event_task.task_num

    def _arm_one_shot(self, timer_num: int, compare_time: int) -> None:
        if self.timers.find(timer_num) is not None:
            self.timers.change_timer(timer_num, compare_time)
        else:
            self.timers.add_timer(1, timer_num, TimerMethod.ONE_SHOT, compare_time)

    def add_task(
        self,
        event_task_num: int,
        task_type: TaskType,
        execute_time: int,
        terminate_num: int,
        action: Optional[Action],
        execute_time_since_arrival: int,
    ) -> None:
        """Add a task now, or after execute_time_since_arrival ticks."""
        if event_task_num in self.task_list:
            return
        self.create_task(event_task_num, task_type, 0, execute_time, 0, terminate_num, action)
        if execute_time_since_arrival == 0:
            slot = self.timers.find(SLOT_TIMER)
            if slot is not None and not slot.end_flag and slot.active:
                head = self.ready_list.head
                if head is not None and len(self.ready_list) == 1:
                    self.current_execute_task = head.task_num
                    slot.compare_time = self.timers.global_counter + execute_time
                else:
                    self.timers.add_timer(
                        1, event_task_num, TimerMethod.ONE_SHOT, slot.compare_time
                    )
                    slot.compare_time += execute_time
                slot.end_flag = False
                slot.active = True
            return
        self.suspend(event_task_num)
        if task_type == TaskType.PERIODIC:
            method = TimerMethod.AUTO_RELOAD
        elif task_type == TaskType.APERIODIC:
            method = TimerMethod.ONE_SHOT
        else:
            return
        self.timers.add_timer(
            1, event_task_num, method, self.timers.global_counter + execute_time_since_arrival
        )

    def handle_timers(self) -> None:
        """Act on every timer that has just ended."""
        self.timers.check()
        for timer in self.timers:
            if not (timer.end_flag and not timer.active):
                continue
            if timer.timer_num == IDLE_TASK:
                tasks = list(self.ready_list)
                head = tasks[0] if tasks else None
                if head is not None:
                    if len(tasks) > 1:
                        if tasks[1].state == TaskState.READY:
                            self.current_execute_task = head.task_num
                            break
                    else:
                        self.current_execute_task = IDLE_TASK
                if head is None or head.state != TaskState.READY:
                    self.current_execute_task = IDLE_TASK
                timer.end_flag = False
            elif timer.timer_num == SLOT_TIMER:
                self._end_of_slot()
                timer.end_flag = False
                if len(self.ready_list):
                    self.timer_set()
            else:
                self._release_task_timer(timer)

    def _end_of_slot(self) -> None:
        tasks = list(self.ready_list)
        if not tasks:
            return
        head = tasks[0]
        if head.state not in (TaskState.READY, TaskState.RUNNING):
            return
        second = tasks[1] if len(tasks) > 1 else None
        finished = second is None and (
            (head.task_type == TaskType.PERIODIC and head.release_time != 0)
            or head.task_type != TaskType.PERIODIC
            or (head.task_type != TaskType.UNINF_PERIODIC and head.terminate_num == 0)
        )
        if finished:
            self.current_execute_task = IDLE_TASK
        elif (
            self.current_execute_task == head.task_num
            and second is not None
            and second.state == TaskState.READY
        ):
            self.current_execute_task = second.task_num
        else:
            self.current_execute_task = head.task_num

    def _release_task_timer(self, timer) -> None:
        task = self.ready_list.find(timer.timer_num)
        if task is not None and task.state == TaskState.READY:
            self.current_execute_task = task.task_num
        delete_timer = True
        if task is None:
            self.ready(timer.timer_num)
            timer.compare_time = self.timers.compare_time_of(SLOT_TIMER)
            timer.active = True
            delete_timer = False
            released = self.ready_list.find(timer.timer_num)
            execute_time = released.execute_time if released is not None else -1
            self.timers.change_timer(SLOT_TIMER, timer.compare_time + execute_time)
        elif task.state == TaskState.BLOCKED:
            task.state = TaskState.READY
            self.task_list.set_state(task.task_num, TaskState.READY)
            if task is self.ready_list.head:
                self.current_execute_task = task.task_num
            else:
                timer.compare_time = self.timers.compare_time_of(SLOT_TIMER)
            timer.active = True
            delete_timer = False
            self.timers.change_timer(SLOT_TIMER, timer.compare_time + task.execute_time_left)
        if timer.method == TimerMethod.ONE_SHOT and delete_timer:
            self.timers.delete_timer(timer.position)
        else:
            timer.end_flag = False

    def execute(self) -> None:
        """Run the current task (or the background task) until its slot ends."""
        if self.current_execute_task == IDLE_TASK:
            background = next(
                (t for t in self.ready_list if t.task_type == TaskType.BACKGROUND), None
            )
            if background is not None:
                while True:
                    background.run()
                    self._service_flags()
                    if self.current_execute_task != IDLE_TASK:
                        break
            else:
                self._service_flags()
            return

        for task in self.ready_list:
            if task.task_num == self.current_execute_task and task.state == TaskState.READY:
                self._run(task)
                break

    def _run(self, task: Task) -> None:
        task.state = TaskState.RUNNING
        self.task_list.set_state(task.task_num, TaskState.RUNNING)
        while True:
            task.run()
            if self.checking_timer:
                task.execute_time_left -= 1
                self.timer_event()
                self.handle_timers()
                if task.execute_time_left == 0:
                    task.execute_time_left = task.execute_time
                self.checking_timer = False
            if self.port_event_flag:
                self.port_event_flag = False
                self.port_event()
            if self.current_execute_task != task.task_num or task.state != TaskState.RUNNING:
                if (
                    self.current_execute_task != task.task_num
                    and task.state == TaskState.RUNNING
                ):
                    task.state = TaskState.READY
                    self.task_list.set_state(task.task_num, TaskState.READY)
                break

        if task.state == TaskState.READY:
            self._finish_slot(task)
        else:
            self._interrupted(task)

    def _finish_slot(self, task: Task) -> None:
        if task.task_type in (TaskType.APERIODIC, TaskType.INSTANT_EXECUTE):
            self.suspend(task.task_num)
            return
        if task.task_type not in (TaskType.PERIODIC, TaskType.UNINF_PERIODIC):
            return
        if task.release_time == 0:
            task.state = TaskState.READY
            self.task_list.set_state(task.task_num, TaskState.READY)
        else:
            task.state = TaskState.BLOCKED
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

    def _interrupted(self, task: Task) -> None:
        for timer in self.timers:
            for other in self.ready_list:
                if (
                    (other.task_num == timer.timer_num or timer.timer_num == SLOT_TIMER)
                    and timer.active
                    and other.task_num != self.current_execute_task
                    and other.state == TaskState.READY
                ):
                    timer.compare_time = (timer.compare_time - task.execute_time_left) & _ULONG_MASK
                    if timer.compare_time <= self.timers.global_counter:
                        self.current_execute_task = other.task_num
                    break

        if self.current_execute_task == task.task_num:
            tasks = list(self.ready_list)
            following = tasks[tasks.index(task) + 1:] if task in tasks else []
            successor = next((t for t in following if t.state == TaskState.READY), None)
            if successor is not None:
                self.current_execute_task = successor.task_num
            else:
                head = self.ready_list.head
                if head is not None and head.state == TaskState.READY:
                    self.current_execute_task = head.task_num
                else:
                    self.current_execute_task = IDLE_TASK

        if task.state == TaskState.SUSPENDED:
            task.execute_time_left = task.execute_time
            self.suspend(task.task_num)

    def stop_task(self, task_num: int) -> None:
        """Mark a ready task as suspended so its run loop ends."""
        task = self.ready_list.find(task_num)
        if task is None:
            return
        tasks = list(self.ready_list)
        if task.state == TaskState.RUNNING and tasks.index(task) < len(tasks) - 1:
            self.timers.stop_timer(task_num)
        task.state = TaskState.SUSPENDED

    def task_delay(self, task_num: int, delay_time: int) -> None:
        """Block a ready task until delay_time ticks from now."""
        if task_num not in self.task_list:
            return
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

    def begin(self, time_unit: TimerUnit) -> None:
        """Record the tick unit, lay out the slots and pick the first task."""
        self.time_unit = TimerUnit(time_unit)
        self.timer_set()
        self.current_execute_task = self.ready_list.head.task_num

    def describe_ready_list(self) -> str:
        """Return the ready list as 'Ready List: num/state ...'."""
        entries = "".join(f"{t.task_num}/{int(t.state)} " for t in self.ready_list)
        return f"Ready List: {entries}"

    def describe_timers(self) -> str:
        """Return the timers as 'Timer List: num/compare; ...'."""
        entries = "".join(f"{t.timer_num}/{t.compare_time}; " for t in self.timers)
        return f"Timer List: {entries}"