import uuid
import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Optional, Protocol

from supabase import AsyncClient

from app.core.supabase_client import get_async_supabase
from app.utils.env_helper import env_float

logger = logging.getLogger(__name__)

MESSAGE_POLL_INTERVAL = env_float("MESSAGE_POLL_INTERVAL", 2.0)

ChangeCallback = Callable[[dict], Awaitable[None]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class ChangeFeed(Protocol):
    async def subscribe(
        self,
        table: str,
        event: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
    ) -> Subscription: ...


def extract_record(payload: dict) -> dict:
    """
    Pull the changed row out of a realtime postgres_changes payload.

    The record lives under `data.record` in current realtime clients and
    under `new`/`record` in older ones; DELETE events only carry `old_record`.
    """
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    for key in ("record", "new", "old_record", "old"):
        record = data.get(key)
        if record:
            return dict(record)
    return {}


def _log_task_failure(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"realtime_callback_failed task={task.get_name()}", exc_info=error)


class RealtimeSubscription:
    def __init__(self, client: AsyncClient, channel):
        self.client = client
        self.channel = channel

    async def unsubscribe(self) -> None:
        await self.client.remove_channel(self.channel)


class SupabaseChangeFeed:
    """Change feed backed by Supabase Realtime `postgres_changes` channels."""

    def __init__(self, client: AsyncClient):
        self.client = client
        self._tasks: set[asyncio.Task] = set()

    async def subscribe(
        self,
        table: str,
        event: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
    ) -> RealtimeSubscription:
        loop = asyncio.get_running_loop()
        name = f"{table}-{uuid.uuid4().hex[:12]}"

        # Realtime invokes plain callables; hand each event to the loop as a task
        def handle(payload):
            task = loop.create_task(callback(extract_record(payload)), name=name)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(_log_task_failure)

        options = {"schema": "public", "table": table, "callback": handle}
        if filter:
            options["filter"] = filter

        channel = self.client.channel(name)
        channel.on_postgres_changes(event, **options)
        await channel.subscribe()

        logger.info(f"realtime_subscribed channel={name} table={table} event={event} filter={filter}")
        return RealtimeSubscription(self.client, channel)


async def get_change_feed() -> SupabaseChangeFeed:
    return SupabaseChangeFeed(await get_async_supabase())


class Poller:
    """Awaits `tick` every `interval` seconds until stopped."""

    def __init__(self, tick: Callable[[], Awaitable[None]], interval: float = MESSAGE_POLL_INTERVAL):
        self.tick = tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="message-poller")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("poll_tick_failed")

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with suppress(asyncio.CancelledError):
            await task
