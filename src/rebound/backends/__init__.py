"""Execution backends — turn a built bundle into something that serves requests.

    DirectBackend  -- import the bundle as a module, call it in-process
    SandboxBackend -- evaluate the bundle in its own namespace and event
                      loop thread, dispatching fetch events into it
"""

from rebound.backends.base import Artifact, ExecutionBackend, select_backend
from rebound.backends.direct import DirectBackend
from rebound.backends.sandbox import Sandbox, SandboxBackend

__all__ = [
    "Artifact",
    "DirectBackend",
    "ExecutionBackend",
    "Sandbox",
    "SandboxBackend",
    "select_backend",
]
