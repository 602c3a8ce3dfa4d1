"""HTTP primitives — immutable Request, chainable Response, Redirect."""

from perch.http.request import Request
from perch.http.response import Redirect, Response

__all__ = ["Redirect", "Request", "Response"]
