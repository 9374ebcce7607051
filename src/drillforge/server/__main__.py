"""Run the DrillForge server over stdin/stdout.

Usage: python -m drillforge.server  (or ``drillforge serve``)

stdout carries only protocol lines; diagnostics go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Callable, Optional

from .handler import ServerHandler
from .protocol import Notification, Request, Response


def _request_id(line: str):
    """Best-effort id for answering a request that failed validation."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return 0
    return data.get("id", 0) if isinstance(data, dict) else 0


async def handle_line(handler: ServerHandler, line: str) -> Optional[Response]:
    """Answer one input line; blank lines get no response."""
    line = line.strip()
    if not line:
        return None
    try:
        request = Request.parse(line)
    except ValueError as e:
        return Response.from_exception(_request_id(line), e)
    try:
        result = await handler.dispatch({"method": request.method, "params": request.params})
    except Exception as e:
        print(f"drillforge-server: {request.method} failed: {e}", file=sys.stderr)
        return Response.from_exception(request.id, e)
    return Response(id=request.id, result=result)


async def serve(
    reader: asyncio.StreamReader,
    handler: ServerHandler,
    write_line: Callable[[str], None],
) -> None:
    while True:
        raw = await reader.readline()
        if not raw:
            break
        response = await handle_line(handler, raw.decode("utf-8", errors="replace"))
        if response is not None:
            write_line(response.to_json_line())


async def main() -> None:
    def write_line(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def write_notification(notification: Notification) -> None:
        write_line(notification.to_json_line())

    handler = ServerHandler(write_notification=write_notification)

    reader = asyncio.StreamReader()
    loop = asyncio.get_running_loop()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    print("drillforge-server: ready", file=sys.stderr)
    await serve(reader, handler, write_line)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
