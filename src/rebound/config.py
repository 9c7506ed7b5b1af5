"""Server configuration.

One frozen ``ServerConfig`` is shared by the listener, the backend
selection and the builder client.
"""

from dataclasses import dataclass

BACKENDS = ("direct", "sandbox")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Dev server configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = ServerConfig(port=0, backend="sandbox", build_wait_timeout=10.0)
    """

    # Listener
    host: str = "127.0.0.1"
    port: int = 3000  # 0 = let the OS pick a free port
    default_origin: str = ""  # Derived from host/port when empty

    # Execution backend: "direct" (in-process import) or "sandbox"
    backend: str = "direct"

    # Seconds to wait for the builder before answering 503 (None = wait forever)
    build_wait_timeout: float | None = 30.0

    # Logging (forwarded to uvicorn)
    log_level: str = "warning"
    access_log: bool = False

    def origin_for(self, port: int) -> str:
        """Origin used to build absolute request URLs."""
        if self.default_origin:
            return self.default_origin
        return f"http://localhost:{port}"
