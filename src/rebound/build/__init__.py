"""Build coordination.

The builder side (``HeadlessBundler``) runs builds one at a time and
publishes the latest ``BuildResult`` over RPC. The serving side
(``BuilderClient``) asks for it on every request.
"""

from rebound.build.bundler import HeadlessBundler, start_headless_bundler
from rebound.build.client import BuilderClient
from rebound.build.result import BuildFailure, BuildResult, BuildSuccess

__all__ = [
    "BuildFailure",
    "BuildResult",
    "BuildSuccess",
    "BuilderClient",
    "HeadlessBundler",
    "start_headless_bundler",
]
