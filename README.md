# tickschedule

This package provides cooperative task schedulers that are driven by a tick
counter and a list of software timers. It has two schedulers:

- `RTCScheduler` (`tickschedule.rtc`) runs ready tasks one after another. Each
  task gets a slot as long as its execution time.
- `RRScheduler` (`tickschedule.rr`) shares the ticks between ready tasks in
  fixed-length quantums. Tasks are ordered by priority, and a task's priority
  goes up by one each time it waits longer than `increase_time` ticks.

Both schedulers build on `Scheduler` (`tickschedule.scheduler`), which keeps:

- `task_list`, a `TaskList` from `tickschedule.tasks` holding every known task;
- `ready_list`, a second `TaskList` holding the tasks that may run;
- `timers`, a `TimerService` from `tickschedule.timers` holding the tick
  counter and the software timers.

The package uses only the standard library.

## Installing

```
pip install .
```

To install the test dependencies and run the tests:

```
pip install .[test]
pytest
```

## Concepts

**Tasks.** A `Task` has:

- a number;
- a `TaskType`: `PERIODIC`, `APERIODIC`, `INSTANT_EXECUTE`, `BACKGROUND` or
  `UNINF_PERIODIC`;
- a `TaskState`: `RUNNING`, `READY`, `SUSPENDED`, `BLOCKED` or `DELETED`;
- a base priority and a current priority;
- an execution time in ticks and the ticks it has left;
- a release time and a terminate count;
- an action, which is any callable that takes no arguments.

Tasks of type `INSTANT_EXECUTE` start `SUSPENDED`. All other types start
`READY`. `Scheduler` changes tasks with these methods:

- `create_task`
- `create_background_task`
- `delete_task`
- `increase_priority`
- `reset_priority`
- `suspend`
- `ready`

**Timers.** A `SoftwareTimer` ends when `TimerService.global_counter` equals
its `compare_time`. `TimerService.check()` marks such timers as ended.
`TimerMethod.ONE_SHOT` timers are deleted once the scheduler has handled them.
`TimerMethod.AUTO_RELOAD` timers stay in the list.

**Ticks.** Each scheduler's `on_tick()` advances the counter and sets
`checking_timer`. `execute()` keeps calling the current task's action until a
tick has been seen and the timers have been handled. So `on_tick()` must be
called from inside an action or from another thread. Otherwise `execute()`
does not return.

Two task numbers are reserved:

- `0xFE` (`tickschedule.rtc.SLOT_TIMER`) is the scheduler's own slot or quantum
  timer.
- `0` (`tickschedule.rtc.IDLE_TASK`) means that no task is selected. In that
  case `execute()` runs the `BACKGROUND` task, if there is one.

## Example

```python
from tickschedule.timers import TimerService, TimerUnit
from tickschedule.tasks import TaskType
from tickschedule.rr import RRScheduler

timers = TimerService()
rr = RRScheduler(timers)

rr.create_task(1, TaskType.PERIODIC, 1, 4, 10, 0, lambda: None)
rr.create_task(2, TaskType.APERIODIC, 2, 3, 0, 0, lambda: None)
rr.begin(2, 20, TimerUnit.MILLISECOND)

print(rr.current_execute_task)   # 2: the task with the higher priority
print([e.task_num for e in rr.allocated])   # [2, 1]
```

## Hooks

`RTCScheduler` calls `timer_event_handler` each time it handles a tick and
`port_event_handler` after `raise_port_event()`, provided those attributes are
set. `RRScheduler.timer_event()` is an empty method that runs after the timers
are handled on every tick. Subclasses can override it.

## Errors

- `TaskList` and `TimerService` raise `IndexError` for positions below 1.
- `TimerService.compare_time_of` raises `KeyError` for an unknown timer.
- `RTCScheduler.timer_set` raises `RuntimeError` when no task is ready.
- `RRScheduler.execute` raises `RuntimeError` when the selected task is not
  ready.
- `RRScheduler.update_allocated` raises `LookupError` when the task is not in
  the ready list.

## Inspecting state

`TaskList` and `TimerService` support iteration and `len()`. They also provide
`find`, `position_of` and `head`. `RRScheduler.allocated` holds the
`AllocatedTask` entries that round robin works on.
`RTCScheduler.describe_ready_list()` and `RTCScheduler.describe_timers()` each
return a one-line summary string.

## What the package does not do

The package has no hardware timer and no clock of its own. `begin()` records
the `TimerUnit` but does not start anything. Ticks come only from calls to
`on_tick()` (or `TimerService.tick()`). The package also has no command-line
program.