import asyncio
import base64
import binascii
import contextlib
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from punchlist.asr.accumulator import TranscriptAccumulator
from punchlist.errors import (
    CapabilityUnavailable,
    InvalidTransition,
    NotFound,
    PunchlistError,
    ValidationError,
)
from punchlist.models import DraftRecord, PhotoBlob
from punchlist.pipeline.draft import DraftReconciler
from punchlist.services import Services, get_services

logger = logging.getLogger(__name__)

ws_router = APIRouter()

EDITABLE_FIELDS = ("room", "description", "category")


def _draft_message(reconciler: DraftReconciler, draft: DraftRecord) -> Dict[str, Any]:
    return {"type": "draft", "state": reconciler.state.value, "draft": draft.to_dict()}


def _error_message(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


async def _handle_command(
    payload: Dict[str, Any],
    reconciler: DraftReconciler,
    capture,
    outbox: asyncio.Queue,
) -> None:
    command = payload.get("type")

    if command == "start":
        try:
            reconciler.start_capture()
        except CapabilityUnavailable as e:
            outbox.put_nowait(_error_message(str(e)))

    elif command == "stop":
        reconciler.stop_capture()

    elif command == "error":
        # capture failure reported by the client (microphone denied, ...)
        capture.fail(str(payload.get("reason", "other")))

    elif command == "edit":
        fields = {k: payload[k] for k in EDITABLE_FIELDS if k in payload}
        try:
            reconciler.edit(**fields)
        except (ValidationError, InvalidTransition) as e:
            outbox.put_nowait(_error_message(str(e)))

    elif command == "photo":
        try:
            content = base64.b64decode(payload.get("data", ""), validate=True)
        except (binascii.Error, ValueError):
            outbox.put_nowait(_error_message("Photo data is not valid base64."))
            return
        reconciler.attach_photo(
            PhotoBlob(
                filename=payload.get("filename") or "photo.jpg",
                content=content,
                content_type=payload.get("content_type") or "image/jpeg",
            )
        )

    elif command == "submit":
        try:
            item = await reconciler.submit()
        except PunchlistError as e:
            outbox.put_nowait(_error_message(str(e)))
            return
        outbox.put_nowait({"type": "submitted", "item": item.to_dict()})

    elif command == "cancel":
        reconciler.cancel()

    else:
        outbox.put_nowait(_error_message(f"Unknown command: {command}"))


async def _send_frames(ws: WebSocket, outbox: asyncio.Queue, job_id: str) -> None:
    try:
        while True:
            message = await outbox.get()
            await ws.send_json(message)
    except (WebSocketDisconnect, RuntimeError) as e:
        # client went away with frames still queued
        logger.info("Stopped sending to capture session for job %s: %s", job_id, e)


async def _stop_task(task: asyncio.Task) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@ws_router.websocket("/ws/capture/{job_id}")
async def capture_endpoint(
    ws: WebSocket,
    job_id: str,
    services: Services = Depends(get_services),
):
    await ws.accept()

    try:
        await services.jobs.get(job_id)
    except NotFound:
        await ws.send_json(_error_message("Job not found"))
        await ws.close(code=4404)
        return

    capture = services.new_capture()
    accumulator = TranscriptAccumulator(capture)
    reconciler = DraftReconciler(
        job_id,
        accumulator,
        services.extractor,
        services.items,
        services.categories,
    )

    outbox: asyncio.Queue = asyncio.Queue()
    reconciler.subscribe(lambda draft: outbox.put_nowait(_draft_message(reconciler, draft)))
    outbox.put_nowait(_draft_message(reconciler, reconciler.draft))

    sender_task = asyncio.create_task(_send_frames(ws, outbox, job_id))

    try:
        while True:
            msg = await ws.receive()
            if msg["type"] == "websocket.disconnect":
                break

            if msg.get("bytes"):
                capture.feed(msg["bytes"])
                continue

            raw = (msg.get("text") or "").strip()
            if not raw:
                continue

            # plain "stop" is accepted as well as {"type": "stop"}
            if raw == "stop":
                reconciler.stop_capture()
                continue

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                outbox.put_nowait(_error_message("Messages must be JSON."))
                continue

            if not isinstance(payload, dict):
                outbox.put_nowait(_error_message("Messages must be JSON objects."))
                continue

            await _handle_command(payload, reconciler, capture, outbox)

    except WebSocketDisconnect:
        pass
    finally:
        reconciler.close()
        await _stop_task(sender_task)
        logger.info("Capture session for job %s closed", job_id)
