"""
Runtime package for scheduling, I/O and execution.

Architecture:
- TaskScheduler owns microtasks, macrotasks and timers
- Promise settles and runs reactions as microtasks
- AsyncBridge runs blocking operations on worker threads
- ScriptContext wires one runtime together; Executor drives it

Cross-cutting:
- Failures of tasks are isolated and reported
- Runtime counters collected by RuntimeMonitor
- Worker threads only communicate through the macrotask queue
"""

from .bridge import AsyncBridge, CancelContext
from .context import ScriptContext
from .executor import AsyncExecutor, Executor
from .fetch import FetchClient, Headers, Request, Response
from .monitor import RuntimeMonitor
from .promise import Promise, PromiseState
from .scheduler import TaskScheduler
from .transport import HttpxTransport

__all__ = [
    "AsyncBridge",
    "CancelContext",
    "ScriptContext",
    "Executor",
    "AsyncExecutor",
    "FetchClient",
    "Headers",
    "Request",
    "Response",
    "RuntimeMonitor",
    "Promise",
    "PromiseState",
    "TaskScheduler",
    "HttpxTransport",
]
