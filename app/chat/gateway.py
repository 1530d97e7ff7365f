"""
Conversation and message access on top of the Supabase tables.

Plain synchronous functions taking the client as their first argument; the
HTTP routes call them directly and the inbox session calls them through
the threadpool.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from supabase import Client

from app.utils.profiles import fetch_profiles, snapshot_from_row
from .schemas import Conversation, LastMessage, ListingSummary, Message

logger = logging.getLogger(__name__)

THREAD_KEY = "listing_id,buyer_id,seller_id"


class SelfMessageError(ValueError):
    def __init__(self):
        super().__init__("You cannot message yourself")


class ListingNotFoundError(LookupError):
    pass


class ConversationNotFoundError(LookupError):
    pass


class ConversationAccessError(PermissionError):
    pass


def _last_message(db: Client, conversation_id: str) -> Optional[dict]:
    """Newest message row of one conversation; a single indexed row per lookup."""
    rows = (
        db.table("messages")
        .select("conversation_id, content, created_at")
        .eq("conversation_id", conversation_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    ).data or []
    return rows[0] if rows else None


def _enrich(db: Client, rows: List[dict]) -> List[Conversation]:
    """Attach listing, participant and last-message data to conversation rows."""
    if not rows:
        return []

    conversation_ids = [str(row["id"]) for row in rows]
    listing_ids = sorted({str(row["listing_id"]) for row in rows})

    listing_rows = (
        db.table("listings")
        .select("id, title, images")
        .in_("id", listing_ids)
        .execute()
    ).data or []
    listings = {str(row["id"]): row for row in listing_rows}

    profiles = fetch_profiles(
        db, [row["buyer_id"] for row in rows] + [row["seller_id"] for row in rows]
    )

    last_messages = {
        conversation_id: _last_message(db, conversation_id)
        for conversation_id in conversation_ids
    }

    conversations = []
    for row in rows:
        conversation_id = str(row["id"])
        buyer_id = str(row["buyer_id"])
        seller_id = str(row["seller_id"])
        listing = listings.get(str(row["listing_id"]))
        last = last_messages.get(conversation_id)

        conversations.append(
            Conversation(
                id=conversation_id,
                listing_id=str(row["listing_id"]),
                buyer_id=buyer_id,
                seller_id=seller_id,
                created_at=row.get("created_at"),
                updated_at=row.get("updated_at"),
                listing=ListingSummary(
                    title=listing["title"], images=listing.get("images") or []
                )
                if listing
                else ListingSummary(),
                buyer=profiles.get(buyer_id) or snapshot_from_row(buyer_id, None),
                seller=profiles.get(seller_id) or snapshot_from_row(seller_id, None),
                last_message=LastMessage(
                    content=last["content"], created_at=last["created_at"]
                )
                if last
                else None,
            )
        )

    return conversations


def list_conversations(db: Client, user_id: str) -> List[Conversation]:
    """Every conversation the user is buyer or seller in, most recently active first."""
    rows = (
        db.table("conversations")
        .select("*")
        .or_(f"buyer_id.eq.{user_id},seller_id.eq.{user_id}")
        .order("updated_at", desc=True)
        .execute()
    ).data or []

    return _enrich(db, rows)


def get_conversation(db: Client, conversation_id: str) -> Optional[Conversation]:
    rows = (
        db.table("conversations")
        .select("*")
        .eq("id", str(conversation_id))
        .limit(1)
        .execute()
    ).data or []

    enriched = _enrich(db, rows)
    return enriched[0] if enriched else None


def find_conversation(
    db: Client, listing_id: str, buyer_id: str, seller_id: str
) -> Optional[dict]:
    rows = (
        db.table("conversations")
        .select("*")
        .eq("listing_id", str(listing_id))
        .eq("buyer_id", str(buyer_id))
        .eq("seller_id", str(seller_id))
        .limit(1)
        .execute()
    ).data or []

    return rows[0] if rows else None


def resolve_or_create_conversation(
    db: Client, listing_id: str, buyer_id: str, seller_id: str
) -> tuple[Conversation, bool]:
    """
    Return the thread for (listing, buyer, seller), creating it if needed.

    Creation is an insert that ignores conflicts on the unique thread key
    followed by a read-back, so two concurrent calls still end up sharing one
    row. The boolean is True only for the call whose insert created the row.
    """
    if str(buyer_id) == str(seller_id):
        raise SelfMessageError()

    existing = find_conversation(db, listing_id, buyer_id, seller_id)
    if existing:
        return _enrich(db, [existing])[0], False

    inserted = (
        db.table("conversations")
        .upsert(
            {
                "listing_id": str(listing_id),
                "buyer_id": str(buyer_id),
                "seller_id": str(seller_id),
            },
            on_conflict=THREAD_KEY,
            ignore_duplicates=True,
        )
        .execute()
    )

    row = find_conversation(db, listing_id, buyer_id, seller_id)
    if row is None:
        raise RuntimeError("Conversation insert did not persist.")

    is_new = bool(inserted.data)
    if is_new:
        logger.info(
            f"conversation_created id={row['id']} listing_id={listing_id} "
            f"buyer_id={buyer_id} seller_id={seller_id}"
        )
    return _enrich(db, [row])[0], is_new


def message_seller(db: Client, listing_id: str, buyer_id: str) -> tuple[Conversation, bool]:
    """Open (or reuse) the buyer's thread with whoever posted the listing."""
    rows = (
        db.table("listings")
        .select("id, user_id")
        .eq("id", str(listing_id))
        .limit(1)
        .execute()
    ).data or []

    if not rows:
        raise ListingNotFoundError(listing_id)

    seller_id = str(rows[0]["user_id"])
    return resolve_or_create_conversation(db, listing_id, buyer_id, seller_id)


def require_participant(db: Client, conversation_id: str, user_id: str) -> dict:
    rows = (
        db.table("conversations")
        .select("id, buyer_id, seller_id")
        .eq("id", str(conversation_id))
        .limit(1)
        .execute()
    ).data or []

    if not rows:
        raise ConversationNotFoundError(conversation_id)

    row = rows[0]
    if str(user_id) not in (str(row["buyer_id"]), str(row["seller_id"])):
        raise ConversationAccessError(conversation_id)
    return row


def list_messages(db: Client, conversation_id: str) -> List[Message]:
    rows = (
        db.table("messages")
        .select("id, conversation_id, sender_id, content, read, created_at")
        .eq("conversation_id", str(conversation_id))
        .order("created_at", desc=False)
        .execute()
    ).data or []

    return [Message(**row) for row in rows]


def send_message(db: Client, conversation_id: str, sender_id: str, content: str) -> Message:
    """Append a message and bump the conversation to the top of both inboxes."""
    if not content.strip():
        raise ValueError("Message must not be empty.")

    msg_res = (
        db.table("messages")
        .insert(
            {
                "conversation_id": str(conversation_id),
                "sender_id": str(sender_id),
                "content": content,
            }
        )
        .execute()
    )
    message = Message(**msg_res.data[0])

    (
        db.table("conversations")
        .update({"updated_at": datetime.now(timezone.utc).isoformat()})
        .eq("id", str(conversation_id))
        .execute()
    )

    return message
