import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from app.core.supabase_client import get_supabase
from app.core.dependencies import (
    SessionContext,
    get_session,
    get_optional_session,
)

from .images import InvalidImageError, upload_listing_image
from .store import ListingStore, ListingNotFoundError, get_listing_store, map_markers
from .schemas import (
    ListingFormModel,
    ListingResponseModel,
    ListingsResponseModel,
    MapResponseModel,
    ImageUploadResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


def _snapshot(listings, session: SessionContext | None) -> dict:
    user_id = session.user_id if session else None
    return {
        "listings": [
            ListingResponseModel.from_listing(listing, user_id) for listing in listings
        ]
    }


@router.get("", response_model=ListingsResponseModel, status_code=200)
def get_listings(
    q: str | None = Query(default=None, description="Search title, description, category"),
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
    session: SessionContext | None = Depends(get_optional_session),
):
    """
    Return every listing, newest first, joined with its seller's profile.

    Expired listings are not filtered out; each one carries a
    `time_remaining` that bottoms out at `0h 0m`.

    **Query**
    - `q`: optional case-insensitive search over title, description and category.

    **Returns**
    - `listings`: the current snapshot. When the backend can't be reached, the
      last successfully fetched snapshot is returned instead.
    """
    store.refresh(db)
    return _snapshot(store.search(q), session)


@router.get("/map", response_model=MapResponseModel, status_code=200)
def get_listing_markers(
    q: str | None = None,
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
):
    """
    Map markers for listings with a usable location.

    Listings whose coordinates are missing, non-numeric or out of range are
    still returned by `GET /listings` but are left off the map.
    """
    store.refresh(db)
    return {"markers": map_markers(store.search(q))}


@router.post("/images", response_model=ImageUploadResponseModel, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    Upload a listing photo to storage and return its public URL.

    **Errors**
    - 400: Not an image, empty, or over the size limit
    - 500: Storage error
    """
    data = await file.read()

    try:
        return await run_in_threadpool(
            upload_listing_image, db, file.filename, file.content_type, data
        )
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"listing_image_upload_failed user_id={session.user_id}")
        raise HTTPException(
            status_code=500, detail="Failed to upload image. Please try again."
        )


@router.get("/{listing_id}", response_model=ListingResponseModel, status_code=200)
def get_listing(
    listing_id: str,
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
    session: SessionContext | None = Depends(get_optional_session),
):
    """Single listing with its remaining time, as shown in the detail view."""
    store.refresh(db)
    listing = store.get(listing_id)

    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found.")

    return ListingResponseModel.from_listing(
        listing, session.user_id if session else None
    )


@router.post("", response_model=ListingsResponseModel, status_code=201)
def create_listing(
    data: ListingFormModel,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
):
    """
    Post a new listing owned by the signed-in user.

    The backend assigns `created_at` and `expires_at`; any such fields in the
    body are ignored.

    **Returns**
    - The refreshed listing snapshot, including the new listing.

    **Errors**
    - 401/403: Not signed in (nothing is written)
    - 422: Invalid form data
    - 500: Database error
    """
    try:
        listings = store.create(db, session, data)
    except Exception:
        logger.exception(f"listing_create_failed user_id={session.user_id}")
        raise HTTPException(status_code=500, detail="Failed to create listing")

    return _snapshot(listings, session)


@router.put("/{listing_id}", response_model=ListingsResponseModel, status_code=200)
def update_listing(
    listing_id: str,
    data: ListingFormModel,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
):
    """
    Replace a listing's editable fields.

    Only the owner may edit, unless the session is in admin mode.

    **Errors**
    - 404: No such listing, or it belongs to someone else
    - 500: Database error
    """
    try:
        listings = store.update(db, session, listing_id, data)
    except ListingNotFoundError:
        raise HTTPException(
            status_code=404, detail="Listing not found or not owned by you."
        )
    except Exception:
        logger.exception(f"listing_update_failed id={listing_id}")
        raise HTTPException(status_code=500, detail="Failed to update listing")

    return _snapshot(listings, session)


@router.delete("/{listing_id}", response_model=ListingsResponseModel, status_code=200)
def delete_listing(
    listing_id: str,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
    store: ListingStore = Depends(get_listing_store),
):
    """
    Delete a listing. Same ownership rule as update.

    **Errors**
    - 404: No such listing, or it belongs to someone else
    - 500: Database error
    """
    try:
        listings = store.delete(db, session, listing_id)
    except ListingNotFoundError:
        raise HTTPException(
            status_code=404, detail="Listing not found or not owned by you."
        )
    except Exception:
        logger.exception(f"listing_delete_failed id={listing_id}")
        raise HTTPException(status_code=500, detail="Failed to delete listing")

    return _snapshot(listings, session)
