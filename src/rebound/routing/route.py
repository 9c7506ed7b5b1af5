"""PathSegment and RouteMatch frozen dataclasses."""

from dataclasses import dataclass

from rebound.http.request import RouteParamValue


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:    ``/users``        (is_param=False)
    Param:     ``/{id}``         (is_param=True, param_name="id")
    Typed:     ``/{id:int}``     (is_param=True, param_name="id", param_type="int")
    Wildcard:  ``/{rest:path}``  (is_param=True, param_type="path")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route_id: str
    route_params: dict[str, RouteParamValue]
