"""Server handler: dispatches JSON-lines requests to the coach."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from drillforge.config.settings import Settings
from drillforge.engine.assignment import RandomSource
from drillforge.engine.errors import InvalidInput
from drillforge.engine.models import SessionOutcome, parse_iso
from drillforge.service.coach import Coach

from .protocol import Notification


def _require(params: dict, *keys: str) -> None:
    missing = [k for k in keys if params.get(k) in (None, "")]
    if missing:
        raise InvalidInput(f"Missing required params: {', '.join(missing)}")


def _flag(params: dict, key: str) -> Optional[bool]:
    value = params.get(key)
    if value is not None and not isinstance(value, bool):
        raise InvalidInput(f"{key} must be true or false, got {value!r}")
    return value


def _now(params: dict) -> Optional[datetime]:
    return parse_iso(params.get("dateISO"))


class ServerHandler:
    """Routes incoming requests to coach methods and returns result dicts."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        write_notification: Optional[Callable[[Notification], None]] = None,
        rng: Optional[RandomSource] = None,
    ):
        self.settings = settings or Settings.load()
        self._write_notification = write_notification or (lambda n: None)
        self.coach = Coach(settings=self.settings, rng=rng, on_event=self._on_event)

    def _on_event(self, name: str, payload: dict) -> None:
        self._write_notification(Notification(name, payload))

    async def dispatch(self, msg: dict) -> dict:
        """Route a request message to the appropriate handler method."""
        method = msg.get("method", "")
        params = msg.get("params") or {}

        handler_map = {
            "listCategories": self._list_categories,
            "assignDrill": self._assign_drill,
            "startSession": self._start_session,
            "recordDrillResult": self._record_drill_result,
            "completeSession": self._complete_session,
            "getProgress": self._get_progress,
        }

        handler = handler_map.get(method)
        if handler is None:
            raise ValueError(f"Unknown method: {method}")

        return await handler(params)

    async def _list_categories(self, params: dict) -> dict:
        catalog = self.coach.catalog
        return {
            "categories": [
                {"id": category, "drillCount": len(catalog.for_category(category))}
                for category in catalog.list_categories()
            ]
        }

    async def _assign_drill(self, params: dict) -> dict:
        _require(params, "userId", "category")
        result = self.coach.assign(
            params["userId"],
            params["category"],
            difficulty=params.get("difficulty"),
            skill_level=params.get("skillLevel"),
            now=_now(params),
            goal=params.get("goal"),
        )
        return result.to_dict()

    async def _start_session(self, params: dict) -> dict:
        _require(params, "userId", "category")
        return self.coach.start_session(
            params["userId"],
            params["category"],
            suggested_duration=params.get("suggestedDuration", 10),
            difficulty=params.get("difficulty", "medium"),
            skill_level=params.get("skillLevel"),
            now=_now(params),
            goal=params.get("goal"),
        )

    async def _record_drill_result(self, params: dict) -> dict:
        _require(params, "userId", "drillId", "outcome")
        return self.coach.record_drill_result(
            params["userId"],
            params["drillId"],
            params["outcome"],
            confidence_after=params.get("confidenceAfter"),
            reinforcement=_flag(params, "reinforcement"),
            now=_now(params),
        )

    async def _complete_session(self, params: dict) -> dict:
        _require(params, "sessionId")
        outcome = SessionOutcome.from_dict(params)
        return self.coach.complete_session(
            params["sessionId"],
            outcome,
            now=_now(params),
            use_freeze=bool(_flag(params, "useFreeze")),
        )

    async def _get_progress(self, params: dict) -> dict:
        _require(params, "userId")
        return self.coach.progress(params["userId"])
