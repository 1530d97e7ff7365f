import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from supabase import Client

from . import gateway
from .live import ChangeFeed, Poller, Subscription, MESSAGE_POLL_INTERVAL
from .schemas import Conversation, Message

logger = logging.getLogger(__name__)

LIST_VIEW = "list"
THREAD_VIEW = "thread"


class NoConversationOpenError(RuntimeError):
    pass


class ThreadOpenError(RuntimeError):
    def __init__(self, conversation_id: str):
        super().__init__("Could not open the conversation. Please try again.")
        self.conversation_id = conversation_id


class MessageSendError(RuntimeError):
    def __init__(self, draft: str, conversation_id: str):
        super().__init__("Failed to send message.")
        self.draft = draft
        self.conversation_id = conversation_id


def merge_messages(current: Iterable[Message], incoming: Iterable[Message]) -> List[Message]:
    """
    Union two transcripts by message id, ordered by (created_at, id).

    Pushed and polled copies of the same message collapse into one entry,
    whichever path delivered it first.
    """
    by_id = {message.id: message for message in current}
    for message in incoming:
        by_id[message.id] = message
    return sorted(by_id.values(), key=lambda m: (m.created_at, m.id))


class InboxSession:
    """
    Server side view model for one open inbox.

    The session is either on the conversation list (no `selected`) or in a
    thread. While a thread is open its messages are kept current by a poll
    timer and a push listener scoped to that conversation; on the list only the
    conversation-list subscription runs.

    Every navigation bumps `_generation`. Fetches remember the generation they
    started under and drop their result if it changed while they were in
    flight. Navigations themselves run one at a time under `_navigation`, so
    each thread's poller and subscription are torn down before the next
    thread's are set up.
    """

    def __init__(
        self,
        db: Client,
        feed: ChangeFeed,
        user_id: str,
        initial_listing_id: Optional[str] = None,
        poll_interval: float = MESSAGE_POLL_INTERVAL,
        on_change: Optional[Callable[[dict], Awaitable[None]]] = None,
    ):
        self.db = db
        self.feed = feed
        self.user_id = str(user_id)
        self.initial_listing_id = initial_listing_id
        self.poll_interval = poll_interval
        self.on_change = on_change

        self.conversations: List[Conversation] = []
        self.selected: Optional[Conversation] = None
        self.messages: List[Message] = []
        self.draft = ""

        self._generation = 0
        self._closed = False
        self._deep_link_pending = initial_listing_id is not None
        self._list_subscriptions: List[Subscription] = []
        self._thread_subscription: Optional[Subscription] = None
        self._poller: Optional[Poller] = None
        self._navigation = asyncio.Lock()

    @property
    def view(self) -> str:
        return THREAD_VIEW if self.selected is not None else LIST_VIEW

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    async def _call(self, fn, *args):
        return await run_in_threadpool(fn, self.db, *args)

    async def _notify(self):
        if self.on_change is not None and not self._closed:
            await self.on_change(self.snapshot())

    def snapshot(self) -> dict:
        return {
            "view": self.view,
            "conversations": [c.model_dump(mode="json") for c in self.conversations],
            "selected": self.selected.model_dump(mode="json") if self.selected else None,
            "counterpart": self.selected.other_party(self.user_id).model_dump(mode="json")
            if self.selected
            else None,
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "draft": self.draft,
        }

    # lifecycle

    async def start(self):
        for table, event in (("conversations", "*"), ("messages", "INSERT")):
            try:
                subscription = await self.feed.subscribe(table, event, self._on_list_change)
            except Exception:
                # The list still answers explicit refreshes without live updates
                logger.exception(f"inbox_list_subscribe_failed user_id={self.user_id} table={table}")
                continue
            self._list_subscriptions.append(subscription)

        await self.refresh_conversations()

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self._generation += 1

        # Waits out an open() that is mid-subscribe so its handles get released too
        async with self._navigation:
            await self._leave_thread()
        for subscription in self._list_subscriptions:
            await self._unsubscribe(subscription)
        self._list_subscriptions = []

    async def _unsubscribe(self, subscription: Subscription):
        try:
            await subscription.unsubscribe()
        except Exception:
            logger.exception(f"unsubscribe_failed user_id={self.user_id}")

    # conversation list

    async def refresh_conversations(self):
        if self._closed:
            return

        try:
            conversations = await self._call(gateway.list_conversations, self.user_id)
        except Exception:
            logger.exception(f"conversation_list_fetch_failed user_id={self.user_id}")
            return

        if self._closed:
            return

        self.conversations = conversations
        if self.selected is not None:
            self.selected = next(
                (c for c in conversations if c.id == self.selected.id), self.selected
            )

        await self._notify()
        await self._apply_deep_link()

    async def _on_list_change(self, record: dict):
        await self.refresh_conversations()

    async def _apply_deep_link(self):
        if not self._deep_link_pending or self.selected is not None:
            return

        match = next(
            (
                c
                for c in self.conversations
                if c.listing_id == str(self.initial_listing_id) and c.buyer_id == self.user_id
            ),
            None,
        )
        if match is None:
            return

        # Claimed before the await so a concurrent refresh cannot open it twice
        self._deep_link_pending = False
        try:
            await self.open(match.id)
        except ThreadOpenError:
            self._deep_link_pending = True

    # thread

    async def open(self, conversation_id: str):
        conversation = next(
            (c for c in self.conversations if c.id == str(conversation_id)), None
        )
        if conversation is None:
            raise gateway.ConversationNotFoundError(conversation_id)

        async with self._navigation:
            if self._closed:
                return

            await self._leave_thread()
            # Any selection, manual or not, uses up the deep link
            self._deep_link_pending = False
            self._generation += 1
            generation = self._generation

            try:
                subscription = await self.feed.subscribe(
                    "messages",
                    "INSERT",
                    self._on_thread_message,
                    filter=f"conversation_id=eq.{conversation.id}",
                )
            except Exception as e:
                logger.exception(f"inbox_thread_subscribe_failed conversation_id={conversation.id}")
                self._reset_to_list()
                await self._notify()
                raise ThreadOpenError(conversation.id) from e

            self.selected = conversation
            self.messages = []
            self.draft = ""
            self._thread_subscription = subscription
            self._poller = Poller(self.poll_once, self.poll_interval)
            self._poller.start()

            logger.info(f"inbox_thread_opened user_id={self.user_id} conversation_id={conversation.id}")
            await self._notify()

        await self.load_messages(generation)

    async def back(self):
        async with self._navigation:
            await self._leave_thread()
            self._generation += 1
            self._reset_to_list()
        await self._notify()

    def _reset_to_list(self):
        self.selected = None
        self.messages = []
        self.draft = ""

    async def _leave_thread(self):
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None
        if self._thread_subscription is not None:
            await self._unsubscribe(self._thread_subscription)
            self._thread_subscription = None

    async def poll_once(self):
        await self.load_messages(self._generation)

    async def load_messages(self, generation: int):
        if self.selected is None or self._is_stale(generation):
            return
        conversation_id = self.selected.id

        try:
            messages = await self._call(gateway.list_messages, conversation_id)
        except Exception:
            logger.exception(f"message_fetch_failed conversation_id={conversation_id}")
            return

        if self._is_stale(generation):
            logger.debug(f"discarding_stale_messages conversation_id={conversation_id}")
            return

        merged = merge_messages(self.messages, messages)
        if merged != self.messages:
            self.messages = merged
            await self._notify()

    async def _on_thread_message(self, record: dict):
        try:
            message = Message(**record)
        except (TypeError, ValidationError):
            logger.warning(f"ignoring_malformed_message_event record={record}")
            return

        if self.selected is None or message.conversation_id != self.selected.id:
            return

        self.messages = merge_messages(self.messages, [message])
        await self._notify()
        await self.refresh_conversations()

    async def send(self, content: str) -> Optional[Message]:
        """
        Send `content` to the open thread.

        The draft is cleared before the request goes out. If the request
        fails and the thread is still open the draft is put back exactly as
        typed. Either way `MessageSendError` is raised carrying the text and
        the conversation it was meant for; nothing is retried.
        """
        if self.selected is None:
            raise NoConversationOpenError("Open a conversation first.")
        if not content.strip():
            return None

        conversation_id = self.selected.id
        generation = self._generation
        self.draft = ""
        await self._notify()

        try:
            message = await self._call(
                gateway.send_message, conversation_id, self.user_id, content
            )
        except Exception as e:
            logger.exception(f"message_send_failed conversation_id={conversation_id}")
            if not self._is_stale(generation):
                self.draft = content
                await self._notify()
            raise MessageSendError(content, conversation_id) from e

        if not self._is_stale(generation):
            self.messages = merge_messages(self.messages, [message])
            await self._notify()
        return message
