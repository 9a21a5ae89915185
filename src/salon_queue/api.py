"""HTTP and WebSocket surface for the queue lifecycle.

The caller's identity comes from the ``X-User-Id`` header, set by the
authentication layer in front of this service.
"""

import asyncio
import logging
import time
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .broadcast import QueueBroadcastChannel
from .catalog import CatalogRepository
from .errors import (
    InvalidServiceSelection,
    InvalidTransition,
    NotFound,
    QueueError,
    StorageUnavailable,
    Unauthorized,
)
from .lifecycle import QueueLifecycleManager
from .schemas import (
    AdvanceRequest,
    CustomerRecord,
    JoinRequest,
    OfferRecord,
    QueueEntryRecord,
    QueueEvent,
    SalonAnalytics,
    SalonQueueSummary,
    ServiceRecord,
    UserQueueEntry,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[QueueError], int] = {
    NotFound: 404,
    Unauthorized: 403,
    InvalidTransition: 409,
    InvalidServiceSelection: 400,
    StorageUnavailable: 503,
}


def error_status(exc: QueueError) -> int:
    for error_type, status in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


def get_actor(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Verified user id of the caller."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id


Actor = Annotated[str, Depends(get_actor)]


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            _ = await websocket.receive_text()
    except WebSocketDisconnect:
        return


def create_app(
    manager: QueueLifecycleManager,
    channel: QueueBroadcastChannel,
    catalog: CatalogRepository,
) -> FastAPI:
    """Build the FastAPI application around an existing manager, channel and catalog."""
    app = FastAPI(title="Salon Queue")
    app.state.manager = manager
    app.state.channel = channel
    app.state.catalog = catalog

    @app.exception_handler(QueueError)
    async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
        status = error_status(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status, content=exc.to_message())

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "time": int(time.time() * 1000)}

    # -------------------- salon queues --------------------

    @app.post("/api/salons/{salon_id}/queue", status_code=201)
    def join_queue(salon_id: str, body: JoinRequest, actor: Actor) -> QueueEntryRecord:
        return manager.join(actor, salon_id, body.service_ids, body.offer_ids)

    @app.get("/api/salons/{salon_id}/queue")
    def waiting_list(salon_id: str) -> list[QueueEntryRecord]:
        return manager.waiting_list(salon_id)

    @app.get("/api/salons/{salon_id}/queue/summary")
    def salon_summary(salon_id: str) -> SalonQueueSummary:
        return manager.salon_summary(salon_id)

    @app.post("/api/salons/{salon_id}/queue/advance")
    def advance_queue(
        salon_id: str, actor: Actor, body: AdvanceRequest | None = None
    ) -> QueueEntryRecord | None:
        entry_id = body.entry_id if body is not None else None
        return manager.advance(actor, salon_id, entry_id)

    @app.get("/api/salons/{salon_id}/analytics")
    def salon_analytics(salon_id: str, actor: Actor) -> SalonAnalytics:
        return manager.analytics(actor, salon_id)

    @app.get("/api/salons/{salon_id}/services")
    def salon_services(salon_id: str) -> list[ServiceRecord]:
        _ = catalog.get_salon(salon_id)
        return catalog.list_services(salon_id)

    @app.get("/api/salons/{salon_id}/offers")
    def salon_offers(salon_id: str) -> list[OfferRecord]:
        """Offers a customer can apply when joining right now."""
        _ = catalog.get_salon(salon_id)
        return catalog.list_offers(salon_id, active_at=int(time.time() * 1000))

    # -------------------- customers --------------------

    @app.get("/api/customers/me")
    def my_account(actor: Actor) -> CustomerRecord:
        return catalog.get_customer(actor)

    # -------------------- queue entries --------------------

    @app.get("/api/queues/my")
    def my_queues(actor: Actor) -> list[UserQueueEntry]:
        return manager.entries_for_user(actor)

    @app.get("/api/queues/{entry_id}")
    def get_entry(entry_id: str) -> QueueEntryRecord:
        return manager.get_entry(entry_id)

    @app.delete("/api/queues/{entry_id}")
    def leave_queue(entry_id: str, actor: Actor) -> QueueEntryRecord:
        return manager.leave(actor, entry_id)

    @app.post("/api/queues/{entry_id}/complete")
    def complete_entry(entry_id: str, actor: Actor) -> QueueEntryRecord:
        return manager.complete(actor, entry_id)

    @app.post("/api/queues/{entry_id}/no-show")
    def no_show_entry(entry_id: str, actor: Actor) -> QueueEntryRecord:
        return manager.mark_no_show(actor, entry_id)

    # -------------------- live updates --------------------

    @app.websocket("/ws/salons/{salon_id}")
    async def salon_updates(websocket: WebSocket, salon_id: str) -> None:
        """Send the current waiting list, then every queue update of the salon."""
        await websocket.accept()
        loop = asyncio.get_running_loop()
        events: asyncio.Queue[QueueEvent] = asyncio.Queue()

        def listener(event: QueueEvent) -> None:
            loop.call_soon_threadsafe(events.put_nowait, event)

        # Subscribe before the snapshot so no change falls in between
        subscription = channel.subscribe(salon_id, listener)
        receiver = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            try:
                waiting = await run_in_threadpool(manager.waiting_list, salon_id)
            except QueueError as e:
                await websocket.send_json(e.to_message())
                await websocket.close(code=4000 + error_status(e))
                return

            await websocket.send_json(
                {
                    "type": "queue_snapshot",
                    "salon_id": salon_id,
                    "waiting": [entry.model_dump(mode="json") for entry in waiting],
                }
            )
            while True:
                getter = asyncio.create_task(events.get())
                done, _ = await asyncio.wait(
                    {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
                )
                if receiver in done:
                    getter.cancel()
                    break
                await websocket.send_text(getter.result().model_dump_json())
        except WebSocketDisconnect:
            pass
        finally:
            receiver.cancel()
            _ = channel.unsubscribe(subscription)
            logger.debug(f"WebSocket listener for salon {salon_id} closed")

    return app
