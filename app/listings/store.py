import logging
from typing import List

from pydantic import ValidationError
from supabase import Client

from app.core.dependencies import SessionContext
from app.utils.profiles import fetch_profiles, snapshot_from_row
from .schemas import Listing, ListingFormModel, MapMarker

logger = logging.getLogger(__name__)


class ListingNotFoundError(Exception):
    """No listing row matched the id and the caller's ownership scope."""


class ListingStore:
    """
    Last fetched snapshot of every listing, joined with seller profiles.

    The snapshot is only ever replaced as a whole: each mutation is followed by
    a full re-fetch, and a failed fetch leaves the previous snapshot in place.
    """

    def __init__(self):
        self.listings: List[Listing] = []

    def fetch(self, db: Client) -> List[Listing]:
        rows = (
            db.table("listings")
            .select("*")
            .order("created_at", desc=True)
            .execute()
        ).data or []

        sellers = fetch_profiles(db, [row["user_id"] for row in rows])

        listings = []
        for row in rows:
            seller_id = str(row["user_id"])
            seller = sellers.get(seller_id) or snapshot_from_row(seller_id, None)
            try:
                listing = Listing(
                    **{**row, "id": str(row["id"]), "user_id": seller_id, "seller": seller}
                )
            except ValidationError as e:
                # One malformed row must not blank the whole feed
                logger.warning(
                    f"listing_row_skipped id={row.get('id')} errors={e.error_count()}"
                )
                continue
            listings.append(listing)

        self.listings = listings
        return listings

    def refresh(self, db: Client) -> List[Listing]:
        try:
            return self.fetch(db)
        except Exception:
            logger.exception("listing_refresh_failed; keeping previous snapshot")
            return self.listings

    def get(self, listing_id: str) -> Listing | None:
        return next((l for l in self.listings if l.id == str(listing_id)), None)

    def search(self, query: str | None) -> List[Listing]:
        if not query:
            return list(self.listings)
        return [listing for listing in self.listings if listing.matches(query)]

    def create(
        self, db: Client, session: SessionContext, data: ListingFormModel
    ) -> List[Listing]:
        db.table("listings").insert({**data.to_row(), "user_id": session.user_id}).execute()
        logger.info(f"listing_created user_id={session.user_id} title={data.title!r}")

        return self.refresh(db)

    def update(
        self,
        db: Client,
        session: SessionContext,
        listing_id: str,
        data: ListingFormModel,
    ) -> List[Listing]:
        query = db.table("listings").update(data.to_row()).eq("id", str(listing_id))

        # Admins drop the ownership predicate entirely
        if not session.is_admin:
            query = query.eq("user_id", session.user_id)

        result = query.execute()
        if not result.data:
            raise ListingNotFoundError(listing_id)

        logger.info(
            f"listing_updated id={listing_id} user_id={session.user_id} admin={session.is_admin}"
        )
        return self.refresh(db)

    def delete(self, db: Client, session: SessionContext, listing_id: str) -> List[Listing]:
        query = db.table("listings").delete().eq("id", str(listing_id))

        if not session.is_admin:
            query = query.eq("user_id", session.user_id)

        result = query.execute()
        if not result.data:
            raise ListingNotFoundError(listing_id)

        logger.info(
            f"listing_deleted id={listing_id} user_id={session.user_id} admin={session.is_admin}"
        )
        return self.refresh(db)


def map_markers(listings: List[Listing]) -> List[MapMarker]:
    """Markers for the listings whose coordinates can be placed on the map."""
    markers = []
    for listing in listings:
        coordinates = listing.location.coordinates() if listing.location else None
        if coordinates is None:
            logger.debug(f"listing_unmappable id={listing.id} location={listing.location}")
            continue

        lat, lng = coordinates
        markers.append(
            MapMarker(
                id=listing.id,
                title=listing.title,
                price=listing.price,
                lat=lat,
                lng=lng,
                image=listing.cover_image,
            )
        )
    return markers


listing_store = ListingStore()


def get_listing_store() -> ListingStore:
    return listing_store
