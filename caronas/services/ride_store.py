"""
Ride Store

Durable ride records in the `rides` collection. The store is the only
writer of ride documents; every mutation is a conditional replace on the
version read by the caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from caronas.database import get_db, store_guard
from caronas.models.ride import Ride
from caronas.utils.exceptions import ConflictError, RideNotFoundError
from caronas.utils.retry import retry_transient
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_document(ride: Ride) -> Dict[str, Any]:
    return ride.model_dump(mode="python")


class RideStore:
    """
    MongoDB-backed ride store.

    Optimistic concurrency: `commit` only replaces a document whose version
    still equals the version the caller read, so two transactions racing on
    the same ride cannot both commit. The loser gets ConflictError.
    """

    async def get(self, ride_id: str) -> Ride:
        """Load a ride or raise RideNotFoundError."""
        db = get_db()
        with store_guard("ride lookup"):
            doc = await db.rides.find_one({"ride_id": ride_id}, {"_id": 0})
        if not doc:
            raise RideNotFoundError()
        return Ride(**doc)

    async def insert(self, ride: Ride) -> Ride:
        """Store a freshly published ride."""
        db = get_db()
        with store_guard("ride insert"):
            await db.rides.insert_one(_to_document(ride))
        return ride

    async def commit(self, ride: Ride, expected_version: int) -> Ride:
        """
        Replace the stored ride if nobody committed since `expected_version`.

        Returns the committed ride with its new version.
        """
        db = get_db()

        committed = ride.model_copy(
            update={"version": expected_version + 1, "updated_at": utc_now()}
        )

        # RACE CONDITION FIX: version in the filter makes read-modify-write atomic
        with store_guard("ride commit"):
            result = await db.rides.replace_one(
                {"ride_id": ride.ride_id, "version": expected_version},
                _to_document(committed),
            )

        if result.matched_count == 0:
            logger.info(
                f"Ride {ride.ride_id} commit lost race at version {expected_version}"
            )
            raise ConflictError()

        return committed

    async def transact(
        self,
        ride_id: str,
        transition: Callable[[Ride], Tuple[Ride, T]],
        label: str = "ride transaction",
    ) -> Tuple[Ride, T]:
        """
        Atomic read-modify-write on one ride.

        `transition` receives a fresh snapshot on every attempt and returns
        (updated ride, extra result). Domain errors raised by the transition
        propagate at once; lost races are retried with backoff.
        """

        async def attempt() -> Tuple[Ride, T]:
            current = await self.get(ride_id)
            updated, extra = transition(current)
            committed = await self.commit(updated, current.version)
            return committed, extra

        return await retry_transient(attempt, label=f"{label} {ride_id}")

    async def find(
        self,
        query: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
        limit: int = 0,
    ) -> List[Ride]:
        """Run a read-only query over rides."""
        db = get_db()
        rides = []
        with store_guard("ride query"):
            cursor = db.rides.find(query, {"_id": 0})
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            async for doc in cursor:
                rides.append(Ride(**doc))
        return rides
