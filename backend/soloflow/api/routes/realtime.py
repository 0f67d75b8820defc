from __future__ import annotations

import asyncio
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from soloflow.api.deps import user_from_token
from soloflow.core.logging_setup import logger
from soloflow.db import session as db_session
from soloflow.schemas.billing import ContextSnapshot
from soloflow.services.subscription_context import SubscriptionContext, session_loader

router = APIRouter(tags=["realtime"])


def _authenticate(token: str) -> UUID:
    with Session(db_session.engine) as session:
        user = user_from_token(token, session)
        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User inactive")
        return user.id


@router.websocket("/ws/subscription")
async def subscription_updates(websocket: WebSocket, token: str | None = Query(default=None)) -> None:
    """Streams the caller's subscription snapshot: once on connect, then after every change."""
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user_id = await run_in_threadpool(_authenticate, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ContextSnapshot] = asyncio.Queue()

    context = SubscriptionContext(user_id, session_loader(db_session.engine))
    # Channel callbacks run on the writer's thread.
    unsubscribe = context.subscribe(lambda snapshot: loop.call_soon_threadsafe(queue.put_nowait, snapshot))
    await run_in_threadpool(context.attach)

    async def _send_updates() -> None:
        while True:
            snapshot = await queue.get()
            await websocket.send_json(snapshot.model_dump(mode="json"))

    async def _wait_for_close() -> None:
        while True:
            await websocket.receive_text()

    tasks = {asyncio.create_task(_send_updates()), asyncio.create_task(_wait_for_close())}
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("Subscription websocket for user %s failed: %s", user_id, exc)
    finally:
        unsubscribe()
        context.detach()
