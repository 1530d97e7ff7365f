import logging
from pydantic import BaseModel
from supabase import Client

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Unknown User"
DEFAULT_USERNAME = "unknown"
DEFAULT_AVATAR = (
    "https://images.unsplash.com/photo-1535713875002-d1d0cf377fde"
    "?auto=format&fit=crop&q=80&w=100"
)


class ProfileSnapshot(BaseModel):
    id: str
    name: str = DEFAULT_NAME
    username: str = DEFAULT_USERNAME
    avatar: str = DEFAULT_AVATAR


def snapshot_from_row(user_id: str, row: dict | None) -> ProfileSnapshot:
    """Build a profile snapshot, filling blanks with the placeholder values."""
    row = row or {}
    return ProfileSnapshot(
        id=str(user_id),
        name=row.get("name") or DEFAULT_NAME,
        username=row.get("username") or DEFAULT_USERNAME,
        avatar=row.get("avatar") or DEFAULT_AVATAR,
    )


def fetch_profiles(db: Client, user_ids) -> dict[str, ProfileSnapshot]:
    """
    Look up profile snapshots for a set of user ids in a single query.

    Every requested id gets an entry; users without a profile row get the
    placeholder snapshot.
    """
    ids = sorted({str(uid) for uid in user_ids if uid})
    if not ids:
        return {}

    rows = (
        db.table("profiles")
        .select("id, name, username, avatar")
        .in_("id", ids)
        .execute()
    ).data or []

    by_id = {str(row["id"]): row for row in rows}
    return {uid: snapshot_from_row(uid, by_id.get(uid)) for uid in ids}
