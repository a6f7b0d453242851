# filechat/core/ws/ws_disconnect.py
import asyncio
import logging
from typing import Callable, Set

from sqlalchemy.orm import Session

from filechat.core.chat.controller import SendAndPollController

logger = logging.getLogger(__name__)


async def cleanup_on_disconnect(
    db: Session,
    user_id: str,
    controller: SendAndPollController,
    pending: Set[asyncio.Task],
    unsubscribe: Callable[[], None],
):
    """
    Called when the client disconnects:
      1) Cancels any in-flight send or poll.
      2) Waits for background tasks to finish unwinding.
      3) Detaches the state listener and closes the DB session.
    """
    controller.cancel()
    unsubscribe()
    tasks = list(pending)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)

    db.close()
    logger.info("WebSocket for %s disconnected, %d background tasks stopped", user_id, len(tasks))
