"""Direct backend — import the bundle and call it in-process.

No isolation boundary: bundle code shares the host's interpreter, event
loop and imported modules. Each build generation is loaded as its own
module (``_rebound_bundle_<built_at_ms>``) compiled straight from source,
so neither ``sys.modules`` nor cached bytecode can hand back a previous
build of the same file.

A bundle module exposes one request entry point, either:

    bundle = RouteBundle({...})          # preferred
    async def make_request(request, options): ...
"""

import asyncio
import logging
import sys
import types
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from rebound._internal.invoke import invoke
from rebound.bundle import MakeRequestOptions
from rebound.errors import BundleLoadError
from rebound.http.request import Request
from rebound.http.response import AnyResponse, to_response
from rebound.middleware.protocol import Middleware

logger = logging.getLogger("rebound.backends")

MODULE_PREFIX = "_rebound_bundle_"


@dataclass(frozen=True, slots=True)
class LoadedBundle:
    """A bundle module loaded for one build generation."""

    module_name: str
    module: types.ModuleType
    entry: Callable[[Request, MakeRequestOptions], Awaitable[AnyResponse]]


def exec_bundle_module(bundle_path: str, module_name: str) -> types.ModuleType:
    """Compile and execute *bundle_path* as a fresh module named *module_name*.

    The module is registered in ``sys.modules`` while it runs so that
    dataclasses and pickling inside the bundle can find it.
    """
    path = Path(bundle_path)
    source = path.read_text(encoding="utf-8")
    code = compile(source, str(path), "exec")

    module = types.ModuleType(module_name)
    module.__file__ = str(path)
    sys.modules[module_name] = module
    try:
        exec(code, module.__dict__)  # noqa: S102
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def find_entry_point(
    module: types.ModuleType,
) -> Callable[[Request, MakeRequestOptions], Awaitable[AnyResponse]]:
    """Return the bundle's ``make_request``-shaped entry point."""
    bundle = getattr(module, "bundle", None)
    if bundle is not None and callable(getattr(bundle, "make_request", None)):
        return bundle.make_request
    make_request = getattr(module, "make_request", None)
    if callable(make_request):
        return make_request
    msg = (
        f"Bundle {module.__file__!r} exposes no request entry point. "
        "Define a module-level 'bundle' (RouteBundle) or 'make_request(request, options)'."
    )
    raise BundleLoadError(msg)


class DirectBackend:
    """Execution backend that imports bundles into the host process."""

    name = "direct"

    __slots__ = ("_loaded", "_options", "load_count")

    def __init__(self, middleware: Sequence[Middleware] = ()) -> None:
        self._options = MakeRequestOptions(middleware=tuple(middleware))
        # Registry of live modules keyed by generation module name
        self._loaded: dict[str, LoadedBundle] = {}
        self.load_count = 0

    async def load(self, bundle_path: str, generation: int) -> LoadedBundle:
        module_name = f"{MODULE_PREFIX}{generation}"
        module = await asyncio.to_thread(exec_bundle_module, bundle_path, module_name)
        try:
            entry = find_entry_point(module)
        except BundleLoadError:
            sys.modules.pop(module_name, None)
            raise

        loaded = LoadedBundle(module_name=module_name, module=module, entry=entry)
        self._loaded[module_name] = loaded
        self.load_count += 1
        logger.debug("Loaded %s as %s", bundle_path, module_name)
        return loaded

    async def invoke(self, handle: LoadedBundle, request: Request) -> AnyResponse:
        return to_response(await invoke(handle.entry, request, self._options))

    def release(self, handle: LoadedBundle) -> None:
        # A concurrent duplicate load of the same generation may own the slot now
        if self._loaded.get(handle.module_name) is handle:
            del self._loaded[handle.module_name]
        if sys.modules.get(handle.module_name) is handle.module:
            del sys.modules[handle.module_name]

    def close(self) -> None:
        for handle in list(self._loaded.values()):
            self.release(handle)
