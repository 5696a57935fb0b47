"""scriptcore: coordination core for a single-threaded script runtime

This package lets a single-threaded script model coexist with concurrent I/O
and a mutable, observable document tree.

Responsibilities:
    - Microtask, macrotask and timer scheduling
    - Promise settlement on the script thread
    - Cancellable fetch on worker threads, handed back through macrotasks
    - DOM event dispatch with capture, target and bubble phases
    - Batched mutation observer delivery

Interactions:
    - Tree collaborator through the TreeAdapter protocol
    - Transport collaborator through the Transport protocol (httpx by default)
    - Logging system for diagnostics

Cross-cutting Concerns:
    Thread Safety:
        - Script-visible state is only touched from the script thread
        - The macrotask queue and the settle-once guard are the only cross-thread structures

    Error Handling:
        - Structured error hierarchy rooted at ScriptCoreError
        - Task and listener failures are isolated and reported, never raised to the driver
        - Asynchronous failures surface as promise rejections

    Logging:
        - Module level loggers, no handlers configured by the library
"""

from .config import RuntimeConfig
from .runtime import AsyncExecutor, Executor, ScriptContext

__version__ = "0.1.0"

__all__ = ["RuntimeConfig", "ScriptContext", "Executor", "AsyncExecutor", "__version__"]
