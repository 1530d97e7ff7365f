import json
import logging

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from supabase import Client

from app.core.supabase_client import get_supabase
from app.core.dependencies import (
    SessionContext,
    decode_token,
    get_session,
    get_optional_session,
    session_from_claims,
)

from . import gateway
from .inbox import (
    InboxSession,
    MessageSendError,
    NoConversationOpenError,
    ThreadOpenError,
)
from .live import ChangeFeed, get_change_feed
from .schemas import (
    StartConversationModel,
    StartConversationResponseModel,
    SendMessageModel,
    SendMessageResponseModel,
    GetConversationsResponseModel,
    GetMessagesResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    Retrieve every conversation the authenticated user takes part in.

    A conversation belongs to one listing and one buyer/seller pair. Each
    entry carries the listing's title and images, both participants' profile
    snapshots, and the latest message, newest activity first.

    **Errors**
    - 401: Invalid or expired JWT
    - 500: Database or unexpected server error
    """
    try:
        conversations = gateway.list_conversations(db, session.user_id)
    except Exception:
        logger.exception(f"conversation_list_failed user_id={session.user_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversations")

    return {"conversations": conversations}


@router.post(
    "/conversations",
    response_model=StartConversationResponseModel,
    status_code=200,
)
def message_seller(
    data: StartConversationModel,
    session: SessionContext | None = Depends(get_optional_session),
    db: Client = Depends(get_supabase),
):
    """
    Get or create the caller's conversation with a listing's seller.

    Used when a buyer clicks "Message" on a listing. Repeated calls for the
    same listing return the same conversation.

    **Input**
    - `listing_id`: the listing being asked about

    **Returns**
    - `conversation`: the enriched conversation
    - `is_new`: whether this call created it

    **Errors**
    - 400: The caller posted the listing themselves
    - 401: Not signed in
    - 404: Listing not found
    - 500: Database error
    """
    if session is None:
        raise HTTPException(status_code=401, detail="Please sign in to message the seller")

    try:
        conversation, is_new = gateway.message_seller(db, data.listing_id, session.user_id)
        return {"conversation": conversation, "is_new": is_new}

    except gateway.SelfMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except gateway.ListingNotFoundError:
        raise HTTPException(status_code=404, detail="Listing not found.")
    except Exception:
        logger.exception(f"conversation_resolve_failed listing_id={data.listing_id}")
        raise HTTPException(
            status_code=500,
            detail="Failed to create or fetch conversation.",
        )


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: str,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    Retrieve the full message history of a conversation, oldest first.

    Only the conversation's buyer and seller may read it.

    **Errors**
    - 403: Not a participant
    - 404: Conversation does not exist
    - 500: Database error
    """
    try:
        gateway.require_participant(db, conversation_id, session.user_id)
        messages = gateway.list_messages(db, conversation_id)
        return {"messages": messages}

    except gateway.ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except gateway.ConversationAccessError:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation"
        )
    except Exception:
        logger.exception(f"message_list_failed conversation_id={conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve messages")


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    data: SendMessageModel,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    Send a message to a conversation the caller takes part in.

    Nothing is retried on failure; the client keeps its draft and resends.

    **Errors**
    - 403: Not a participant
    - 404: Conversation not found
    - 500: Database error
    """
    try:
        gateway.require_participant(db, data.conversation_id, session.user_id)
        message = gateway.send_message(
            db, data.conversation_id, session.user_id, data.content
        )
        return {"message": message}

    except gateway.ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except gateway.ConversationAccessError:
        raise HTTPException(
            status_code=403, detail="You are not a participant in this conversation."
        )
    except Exception:
        logger.exception(f"message_send_failed conversation_id={data.conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to send message.")


async def handle_inbox_action(inbox: InboxSession, websocket: WebSocket, data: dict):
    action = data.get("action")

    try:
        if action == "open":
            await inbox.open(str(data.get("conversation_id")))
        elif action == "back":
            await inbox.back()
        elif action == "refresh":
            await inbox.refresh_conversations()
        elif action == "draft":
            inbox.draft = str(data.get("content", ""))
        elif action == "send":
            await inbox.send(str(data.get("content", "")))
        else:
            await websocket.send_json({"type": "error", "detail": f"Unknown action: {action}"})

    except WebSocketDisconnect:
        raise
    except gateway.ConversationNotFoundError:
        await websocket.send_json({"type": "error", "detail": "Conversation not found"})
    except ThreadOpenError as e:
        await websocket.send_json(
            {"type": "error", "detail": str(e), "conversation_id": e.conversation_id}
        )
    except NoConversationOpenError as e:
        await websocket.send_json({"type": "error", "detail": str(e)})
    except MessageSendError as e:
        await websocket.send_json(
            {
                "type": "error",
                "detail": str(e),
                "draft": e.draft,
                "conversation_id": e.conversation_id,
            }
        )
    except Exception:
        logger.exception(f"inbox_action_failed action={action} user_id={inbox.user_id}")
        await websocket.send_json({"type": "error", "detail": "Something went wrong. Please try again."})


@router.websocket("/inbox")
async def inbox_socket(
    websocket: WebSocket,
    token: str = Query(...),
    listing_id: str | None = Query(default=None),
    db: Client = Depends(get_supabase),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """
    Live inbox. Pushes a `state` snapshot after every change and accepts
    `open`, `back`, `refresh`, `draft` and `send` actions as JSON.

    `listing_id` opens the caller's thread for that listing as soon as it
    shows up in the conversation list (once per connection).
    """
    try:
        session = session_from_claims(decode_token(token))
    except HTTPException:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    async def push_state(snapshot: dict):
        await websocket.send_json({"type": "state", **snapshot})

    inbox = InboxSession(
        db,
        feed,
        session.user_id,
        initial_listing_id=listing_id,
        on_change=push_state,
    )

    try:
        await inbox.start()
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "detail": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "detail": "Expected an object"})
                continue

            await handle_inbox_action(inbox, websocket, data)

    except WebSocketDisconnect:
        logger.info(f"inbox_disconnected user_id={session.user_id}")
    finally:
        await inbox.close()
