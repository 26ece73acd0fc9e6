import pytest

from tickschedule.scheduler import Scheduler
from tickschedule.tasks import TaskState, TaskType
from tickschedule.timers import TimerMethod, TimerService


@pytest.fixture
def scheduler():
    return Scheduler(TimerService())


def _nums(task_list):
    return [task.task_num for task in task_list]


def test_create_task_adds_to_both_lists(scheduler):
    scheduler.create_task(1, TaskType.PERIODIC, 3, 5, 10, 0, None)
    scheduler.create_task(2, TaskType.APERIODIC, 1, 4, 0, 0, None)
    assert _nums(scheduler.task_list) == [1, 2]
    assert _nums(scheduler.ready_list) == [1, 2]
    assert scheduler.ready_list.find(1).release_time == 10
    assert scheduler.ready_list.find(2).execute_time_left == 4


def test_instant_task_not_ready_on_create(scheduler):
    scheduler.create_task(7, TaskType.INSTANT_EXECUTE, 0, 2, 0, 0, None)
    assert 7 in scheduler.task_list
    assert 7 not in scheduler.ready_list
    assert scheduler.task_list.state_of(7) == TaskState.SUSPENDED


def test_background_task(scheduler):
    calls = []
    scheduler.create_background_task(9, lambda: calls.append(1))
    task = scheduler.ready_list.find(9)
    assert task.task_type == TaskType.BACKGROUND
    assert task.execute_time == 0
    task.action()
    assert calls == [1]


def test_delete_task_removes_task_and_timer(scheduler):
    scheduler.create_task(1, TaskType.PERIODIC, 0, 5, 0, 0, None)
    scheduler.create_task(2, TaskType.PERIODIC, 0, 5, 0, 0, None)
    scheduler.timers.add_timer(1, 2, TimerMethod.ONE_SHOT, 20)
    scheduler.delete_task(2)
    assert _nums(scheduler.task_list) == [1]
    assert _nums(scheduler.ready_list) == [1]
    assert scheduler.timers.position_of(2) is None


def test_delete_unknown_task_is_ignored(scheduler):
    scheduler.create_task(1, TaskType.PERIODIC, 0, 5, 0, 0, None)
    scheduler.delete_task(42)
    assert _nums(scheduler.task_list) == [1]


def test_increase_and_reset_priority(scheduler):
    scheduler.create_task(1, TaskType.PERIODIC, 2, 5, 0, 0, None)
    scheduler.increase_priority(1)
    scheduler.increase_priority(1)
    assert scheduler.task_list.find(1).priority == 4
    assert scheduler.ready_list.find(1).priority == 4
    scheduler.reset_priority(1)
    assert scheduler.task_list.find(1).priority == 2
    assert scheduler.ready_list.find(1).priority == 2


def test_suspend_removes_from_ready_and_timer(scheduler):
    scheduler.create_task(1, TaskType.APERIODIC, 0, 5, 0, 0, None)
    scheduler.timers.add_timer(1, 1, TimerMethod.AUTO_RELOAD, 8)
    scheduler.suspend(1)
    assert 1 not in scheduler.ready_list
    assert len(scheduler.timers) == 0
    assert scheduler.task_list.state_of(1) == TaskState.SUSPENDED


def test_ready_restores_suspended_task(scheduler):
    scheduler.create_task(1, TaskType.APERIODIC, 0, 5, 0, 0, None)
    scheduler.suspend(1)
    scheduler.ready(1)
    assert _nums(scheduler.ready_list) == [1]
    assert scheduler.ready_list.state_of(1) == TaskState.READY
    assert scheduler.task_list.state_of(1) == TaskState.READY


def test_ready_instant_task(scheduler):
    scheduler.create_task(3, TaskType.INSTANT_EXECUTE, 0, 2, 0, 0, None)
    scheduler.ready(3)
    assert scheduler.ready_list.state_of(3) == TaskState.READY
    assert scheduler.task_list.state_of(3) == TaskState.READY


def test_ready_unknown_task_is_ignored(scheduler):
    scheduler.ready(5)
    assert len(scheduler.ready_list) == 0
    assert scheduler.task_list.state_of(5) == TaskState.DELETED