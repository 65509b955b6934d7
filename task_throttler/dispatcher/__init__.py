"""
Dispatcher module.
Contains the throttled dispatch loop, its throttling state, the task
actions it runs, and the single-active-consumer guard.
"""

from task_throttler.dispatcher.actions import TaskAction, TaskLogAction
from task_throttler.dispatcher.clock import Clock, MonotonicClock
from task_throttler.dispatcher.consumer import ExclusiveConsumer
from task_throttler.dispatcher.loop import DispatchLoop
from task_throttler.dispatcher.throttle import ThrottlingState

__all__ = [
    "DispatchLoop",
    "ExclusiveConsumer",
    "ThrottlingState",
    "TaskAction",
    "TaskLogAction",
    "Clock",
    "MonotonicClock",
]
