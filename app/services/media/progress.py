from __future__ import annotations

"""
Luminav — Progress Channel
==========================

Single-producer / single-consumer, strictly ordered event stream for one
ingestion run, rendered as Server-Sent Events (`data: {json}\\n\\n`).

Handoff
-------
`emit()` enqueues an event and then waits until the consumer has resumed
after yielding it, i.e. until the ASGI server has sent that frame. The
pipeline therefore never runs ahead of the client by more than one event.

Guarantees
----------
- Percent values are clamped to 0..100 and rounded to int.
- Stages only move forward (converting → uploading → saving); within a stage
  percent never decreases. Out-of-order updates are dropped.
- Exactly one terminal event (`complete` or `error`); later emits are ignored.
- When the consumer goes away the channel detaches: pending and future emits
  return immediately so the producer can finish (or be cancelled) on its own.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Optional

from loguru import logger

from app.schemas.enums import ProgressStage
from app.schemas.media import (
    CompleteEvent,
    ErrorEvent,
    PipelineEvent,
    ProgressEvent,
    is_terminal,
    to_wire,
)

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_STAGE_ORDER = {
    ProgressStage.CONVERTING: 0,
    ProgressStage.UPLOADING: 1,
    ProgressStage.SAVING: 2,
}


def clamp_percent(value: float) -> int:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0
    if v != v:  # NaN
        return 0
    return int(round(min(100.0, max(0.0, v))))


def encode_sse(event: PipelineEvent) -> str:
    return f"data: {json.dumps(to_wire(event), separators=(',', ':'))}\n\n"


class ProgressChannel:
    def __init__(self, *, on_detach: Optional[Callable[[], None]] = None) -> None:
        self._queue: asyncio.Queue[PipelineEvent] = asyncio.Queue()
        self._on_detach = on_detach
        self._detached = False
        self._gone = asyncio.Event()
        self._terminated = False
        self._stage: Optional[ProgressStage] = None
        self._percent = -1
        self.sent: list[PipelineEvent] = []

    # ── State ────────────────────────────────────────────────
    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def detached(self) -> bool:
        return self._detached

    # ── Producer side ────────────────────────────────────────
    async def emit(self, event: PipelineEvent) -> bool:
        """Deliver one event; False when it was dropped."""
        if self._terminated:
            logger.warning("Dropping {} event after terminal event", event.type.value)
            return False
        if is_terminal(event):
            self._terminated = True
        self.sent.append(event)
        if self._detached:
            return False
        await self._queue.put(event)
        flushed = asyncio.ensure_future(self._queue.join())
        gone = asyncio.ensure_future(self._gone.wait())
        try:
            await asyncio.wait({flushed, gone}, return_when=asyncio.FIRST_COMPLETED)
            delivered = flushed.done()
        finally:
            flushed.cancel()
            gone.cancel()
        return delivered

    async def progress(self, stage: ProgressStage, percent: float) -> bool:
        stage = ProgressStage(stage)
        value = clamp_percent(percent)
        if self._stage is not None:
            current, incoming = _STAGE_ORDER[self._stage], _STAGE_ORDER[stage]
            if incoming < current or (incoming == current and value <= self._percent):
                return False
        self._stage, self._percent = stage, value
        return await self.emit(ProgressEvent(stage=stage, percent=value))

    async def complete(self, message: str, *, data: Optional[Dict[str, Any]] = None, teaser_url: Optional[str] = None) -> bool:
        return await self.emit(CompleteEvent(message=message, data=data, teaser_url=teaser_url))

    async def error(self, message: str) -> bool:
        return await self.emit(ErrorEvent(message=message))

    def abort(self, message: str) -> None:
        """Queue a terminal error without waiting for the flush (task teardown)."""
        if self._terminated:
            return
        event = ErrorEvent(message=message)
        self._terminated = True
        self.sent.append(event)
        if not self._detached:
            self._queue.put_nowait(event)

    # ── Consumer side ────────────────────────────────────────
    def detach(self) -> None:
        """Consumer is gone: release a waiting producer and stop queueing."""
        if self._detached:
            return
        self._detached = True
        self._gone.set()
        # Undelivered events are dropped without task_done(): they never reached the client
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        if not self._terminated and self._on_detach is not None:
            logger.info("Progress consumer disconnected before the run finished")
            self._on_detach()

    async def events(self) -> AsyncIterator[PipelineEvent]:
        """Yield events in order until the terminal one (then stop)."""
        try:
            while True:
                event = await self._queue.get()
                try:
                    yield event
                finally:
                    self._queue.task_done()
                if is_terminal(event):
                    return
        finally:
            self.detach()

    async def sse(self) -> AsyncIterator[str]:
        """`events()` encoded as SSE frames (StreamingResponse body)."""
        try:
            async for event in self.events():
                yield encode_sse(event)
        finally:
            self.detach()


__all__ = [
    "ProgressChannel",
    "clamp_percent",
    "encode_sse",
    "SSE_MEDIA_TYPE",
    "SSE_HEADERS",
]
