from .push import PushMessage, PushSubscription
from .task import COMPLETED_STATUS, Task, TaskCollection

__all__ = ["COMPLETED_STATUS", "PushMessage", "PushSubscription", "Task", "TaskCollection"]
