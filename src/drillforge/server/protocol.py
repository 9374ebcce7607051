"""Wire format for the DrillForge server.

Every message is one JSON object per line. Clients send requests
(``id``, ``method``, ``params``); the server answers each with a response
carrying the same ``id`` and pushes coach events as notifications, which
have no ``id``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional


class ProtocolError(ValueError):
    """A line that is not a well-formed request."""

    error_type = "InvalidRequest"


class InvalidJSON(ProtocolError):
    error_type = "InvalidJSON"


def _encode(payload: dict) -> str:
    return json.dumps(payload) + "\n"


@dataclass
class Request:
    id: Any
    method: str
    params: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> Request:
        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise ProtocolError("Request is missing a method name")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ProtocolError(f"params must be an object, got {type(params).__name__}")
        return cls(id=data.get("id", 0), method=method, params=params)

    @classmethod
    def parse(cls, line: str) -> Request:
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise InvalidJSON(f"Invalid JSON: {e}") from None
        if not isinstance(data, dict):
            raise ProtocolError("Request must be a JSON object")
        return cls.from_dict(data)


@dataclass
class Response:
    id: Any
    result: Optional[dict] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def from_exception(cls, req_id: Any, exc: Exception) -> Response:
        error_type = getattr(exc, "error_type", None) or type(exc).__name__
        return cls(id=req_id, error=str(exc), error_type=error_type)

    def to_json_line(self) -> str:
        if self.error is None:
            return _encode({"id": self.id, "result": self.result})
        payload = {"id": self.id, "error": self.error}
        if self.error_type:
            payload["errorType"] = self.error_type
        return _encode(payload)


@dataclass
class Notification:
    """A coach event such as ``drill_assigned`` or ``streak_broken``."""
    method: str
    params: dict = field(default_factory=dict)

    def to_json_line(self) -> str:
        return _encode({"method": self.method, "params": self.params})
