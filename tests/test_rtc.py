import pytest

from tickschedule.rtc import IDLE_TASK, SLOT_TIMER, RTCScheduler
from tickschedule.tasks import TaskState, TaskType
from tickschedule.timers import TimerMethod, TimerService, TimerUnit


class CountingScheduler(RTCScheduler):
    def __init__(self, timers):
        super().__init__(timers)
        self.timer_events = 0
        self.port_events = 0

    def timer_event(self):
        self.timer_events += 1

    def port_event(self):
        self.port_events += 1


@pytest.fixture
def sched():
    return CountingScheduler(TimerService())


def test_timer_set_single_task(sched):
    sched.add_task(1, TaskType.PERIODIC, 5, 0, None, 0)
    sched.timer_set()
    assert sched.timers.compare_time_of(SLOT_TIMER) == 5
    assert len(sched.timers) == 1


def test_timer_set_two_tasks(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.add_task(2, TaskType.PERIODIC, 4, 0, None, 0)
    sched.timer_set()
    assert sched.timers.compare_time_of(2) == 3
    assert sched.timers.find(2).method == TimerMethod.AUTO_RELOAD
    assert sched.timers.compare_time_of(SLOT_TIMER) == 7
    assert [t.timer_num for t in sched.timers] == [2, SLOT_TIMER]


def test_timer_set_without_tasks_raises(sched):
    with pytest.raises(RuntimeError):
        sched.timer_set()


def test_begin_picks_head(sched):
    sched.add_task(4, TaskType.PERIODIC, 2, 0, None, 0)
    sched.add_task(5, TaskType.APERIODIC, 2, 0, None, 0)
    sched.begin(TimerUnit.MILLISECOND)
    assert sched.current_execute_task == 4
    assert sched.time_unit == TimerUnit.MILLISECOND


def test_add_task_duplicate_ignored(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.add_task(1, TaskType.APERIODIC, 9, 0, None, 0)
    assert len(sched.task_list) == 1
    assert sched.task_list.find(1).execute_time == 3


@pytest.mark.parametrize(
    "task_type, method",
    [(TaskType.PERIODIC, TimerMethod.AUTO_RELOAD), (TaskType.APERIODIC, TimerMethod.ONE_SHOT)],
)
def test_add_task_delayed(sched, task_type, method):
    sched.add_task(3, task_type, 4, 0, None, 6)
    assert 3 not in sched.ready_list
    assert sched.task_list.state_of(3) == TaskState.SUSPENDED
    assert sched.timers.find(3).method == method
    assert sched.timers.compare_time_of(3) == 6


def test_add_instant_task_delayed_has_no_timer(sched):
    sched.add_task(3, TaskType.INSTANT_EXECUTE, 4, 0, None, 6)
    assert sched.timers.find(3) is None
    assert 3 in sched.task_list


def test_stop_task(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.stop_task(1)
    assert sched.ready_list.state_of(1) == TaskState.SUSPENDED


def test_task_delay(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.task_delay(1, 8)
    assert sched.ready_list.state_of(1) == TaskState.BLOCKED
    assert sched.task_list.state_of(1) == TaskState.BLOCKED
    assert sched.timers.compare_time_of(1) == 8
    assert sched.timers.find(1).method == TimerMethod.ONE_SHOT


def test_task_delay_unknown_task(sched):
    sched.task_delay(9, 8)
    assert len(sched.timers) == 0


def test_change_ready_time(sched):
    sched.add_task(3, TaskType.APERIODIC, 4, 0, None, 6)
    sched.timers.tick()
    sched.change_ready_time(3, 10)
    assert sched.timers.compare_time_of(3) == sched.timers.global_counter + 10
    sched.change_ready_time(42, 10)
    assert sched.timers.find(42) is None


def test_describe_ready_list(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.add_task(2, TaskType.APERIODIC, 3, 0, None, 0)
    assert sched.describe_ready_list() == "Ready List: 1/1 2/1 "


def test_describe_timers(sched):
    sched.add_task(3, TaskType.APERIODIC, 4, 0, None, 6)
    assert sched.describe_timers() == "Timer List: 3/6; "


def test_on_tick_and_port_flag(sched):
    sched.on_tick()
    sched.raise_port_event()
    assert sched.timers.global_counter == 1
    assert sched.checking_timer is True
    assert sched.port_event_flag is True


def test_idle_execute_services_flags(sched):
    sched.on_tick()
    sched.raise_port_event()
    sched.execute()
    assert sched.checking_timer is False
    assert sched.port_event_flag is False
    assert sched.timer_events == 1
    assert sched.port_events == 1


def test_execute_aperiodic_runs_to_completion(sched):
    calls = []

    def act():
        calls.append(sched.timers.global_counter)
        sched.on_tick()

    sched.add_task(1, TaskType.APERIODIC, 2, 0, act, 0)
    sched.begin(TimerUnit.MILLISECOND)
    sched.execute()
    assert len(calls) == 2
    assert sched.timers.global_counter == 2
    assert sched.current_execute_task == IDLE_TASK
    assert 1 not in sched.ready_list
    assert sched.task_list.state_of(1) == TaskState.SUSPENDED
    assert sched.timer_events == 2


def test_instant_event_from_idle(sched):
    sched.add_task(9, TaskType.INSTANT_EXECUTE, 3, 0, None, 0)
    assert 9 not in sched.ready_list
    sched.instant_event(9)
    assert sched.current_execute_task == 9
    assert sched.ready_list.state_of(9) == TaskState.READY
    assert sched.timers.compare_time_of(IDLE_TASK) == 3


def test_instant_event_ignores_other_types(sched):
    sched.add_task(1, TaskType.PERIODIC, 3, 0, None, 0)
    sched.instant_event(1)
    sched.instant_event(77)
    assert sched.current_execute_task == IDLE_TASK
    assert len(sched.timers) == 0


def test_delayed_task_released_by_timer(sched):
    sched.add_task(1, TaskType.PERIODIC, 5, 0, None, 0)
    sched.begin(TimerUnit.SECOND)
    sched.add_task(2, TaskType.APERIODIC, 4, 0, None, 3)
    for _ in range(3):
        sched.timers.tick()
    sched.handle_timers()
    assert 2 in sched.ready_list
    assert sched.timers.compare_time_of(2) == 5
    assert sched.timers.compare_time_of(SLOT_TIMER) == 9
    assert sched.timers.find(2).active is True