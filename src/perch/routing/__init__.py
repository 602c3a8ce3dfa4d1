"""Routing — route registration, table building, and matching."""

from perch.routing.registry import HandlerSpec, collect_routes, route
from perch.routing.route import MatchedRoute, Route
from perch.routing.router import Router
from perch.routing.table import RouteTable, RouteTableBuilder

__all__ = [
    "HandlerSpec",
    "MatchedRoute",
    "Route",
    "RouteTable",
    "RouteTableBuilder",
    "Router",
    "collect_routes",
    "route",
]
