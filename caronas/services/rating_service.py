"""
Rating Service

Handles rating submission, lazy expiry of rating requests and the per-user
rating aggregates.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from caronas.database import get_db, store_guard
from caronas.models.rating import (
    ParticipantRole,
    PendingRatingList,
    Rating,
    RatingCategory,
    RatingCreate,
    RatingRequest,
    RatingRequestStatus,
    ReceivedRating,
    RoleRatingSummary,
    UserRatingAggregate,
)
from caronas.services.feed_service import FeedService
from caronas.utils.exceptions import (
    AlreadySubmittedError,
    ExpiredError,
    InvalidRatingError,
    PermissionDeniedError,
    RequestNotFoundError,
)
from caronas.utils.timezone_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

ROLE_FIELDS = {
    ParticipantRole.DRIVER.value: "as_driver",
    ParticipantRole.PASSENGER.value: "as_passenger",
}

# Categories a rater may score, by the role of the person being rated
ALLOWED_CATEGORIES = {
    ParticipantRole.DRIVER.value: {c.value for c in RatingCategory},
    ParticipantRole.PASSENGER.value: {
        RatingCategory.PUNCTUALITY.value,
        RatingCategory.COMMUNICATION.value,
        RatingCategory.BEHAVIOR.value,
    },
}


def compute_badge(average: float, count: int) -> Optional[str]:
    """Profile badge shown next to a rating summary."""
    if average >= 4.8 and count >= 10:
        return "premium"
    if average >= 4.5 and count >= 5:
        return "top"
    if count > 0 and average >= 4.0:
        return "trusted"
    return None


def summarize(counters: Optional[Dict[str, Any]]) -> RoleRatingSummary:
    """
    Turn stored counters into a summary.

    Counters look like:
        {"count": 3, "total": 13,
         "categories": {"punctuality": {"count": 2, "total": 9}}}
    """
    if not counters or not counters.get("count"):
        return RoleRatingSummary()

    count = counters["count"]
    mean = counters.get("total", 0) / count

    breakdown = {}
    for category, cat in (counters.get("categories") or {}).items():
        if cat.get("count"):
            breakdown[category] = round(cat["total"] / cat["count"], 2)

    return RoleRatingSummary(
        count=count,
        average=round(mean, 2),
        breakdown=breakdown,
        badge=compute_badge(mean, count),
    )


def validate_categories(to_user_role: str, categories: Dict[Any, int]) -> Dict[str, int]:
    """
    Normalize category keys and apply the per-role rules.

    Cleanliness is about the car, so it is only accepted when rating a driver.
    """
    normalized = {RatingCategory(k).value: v for k, v in categories.items()}
    allowed = ALLOWED_CATEGORIES[to_user_role]
    for category, score in normalized.items():
        if category not in allowed:
            raise InvalidRatingError(f"Category '{category}' cannot be rated for a {to_user_role}.")
        if not 1 <= score <= 5:
            raise InvalidRatingError(f"Category '{category}' must be between 1 and 5.")
    return normalized


class RatingService:
    """Service for rating submission and aggregates."""

    def __init__(self, feed: Optional[FeedService] = None):
        self.feed = feed or FeedService()

    async def submit_rating(
        self, request_id: str, data: RatingCreate, from_user_id: str
    ) -> Rating:
        """
        Submit the rating asked for by a pending rating request.

        Validates:
        - The request exists and belongs to the caller
        - It is still pending and not past expires_at
        - Categories fit the role being rated

        The request is claimed with the rating stored on it, then the rating
        and the aggregate are written by steps that are safe to repeat. If a
        store failure interrupts those steps, submitting again finishes them
        with the claimed rating.

        Raises:
            RequestNotFoundError, PermissionDeniedError, AlreadySubmittedError,
            ExpiredError, InvalidRatingError
        """
        db = get_db()
        now = utc_now()

        with store_guard("rating request lookup"):
            doc = await db.rating_requests.find_one({"request_id": request_id}, {"_id": 0})
        if not doc:
            raise RequestNotFoundError("Rating request not found.")

        request = RatingRequest(**doc)
        if request.from_user_id != from_user_id:
            raise PermissionDeniedError("This rating request belongs to another user.")

        if self._is_unfinished(request):
            rating = request.submission
            logger.warning(f"Resuming unfinished submission of rating request {request_id}")
        else:
            rating = await self._claim(request, data, now)

        await self._record(rating)

        logger.info(
            f"Rating {rating.rating_id}: {rating.from_user_id} rated "
            f"{rating.to_user_id} ({rating.to_user_role}) {rating.rating}"
        )
        await self.feed.publish_rating_resolved(
            from_user_id, request_id, RatingRequestStatus.SUBMITTED.value
        )

        return rating

    def _is_unfinished(self, request: RatingRequest) -> bool:
        return (
            request.status == RatingRequestStatus.SUBMITTED
            and request.submission is not None
            and request.recorded_at is None
        )

    async def _claim(
        self, request: RatingRequest, data: RatingCreate, now: datetime
    ) -> Rating:
        """Validate the submission and flip the request pending -> submitted."""
        db = get_db()
        self._require_pending(request)

        if now > ensure_utc(request.expires_at):
            await self._mark_expired(request)
            raise ExpiredError()

        categories = validate_categories(request.to_user_role, data.categories)

        rating = Rating(
            rating_id=str(uuid.uuid4()),
            request_id=request.request_id,
            ride_id=request.ride_id,
            from_user_id=request.from_user_id,
            from_user_role=request.from_user_role,
            to_user_id=request.to_user_id,
            to_user_role=request.to_user_role,
            rating=data.rating,
            categories=categories,
            comment=data.comment,
            is_anonymous=data.is_anonymous,
            created_at=now,
        )

        # RACE CONDITION FIX: only one submission can flip pending -> submitted
        with store_guard("rating request claim"):
            claimed = await db.rating_requests.find_one_and_update(
                {"request_id": request.request_id, "status": RatingRequestStatus.PENDING.value},
                {
                    "$set": {
                        "status": RatingRequestStatus.SUBMITTED.value,
                        "submitted_at": now,
                        "submission": rating.model_dump(),
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        if not claimed:
            raise AlreadySubmittedError()
        return rating

    async def _record(self, rating: Rating) -> None:
        """Write the rating and fold it into the aggregate, then close the request."""
        db = get_db()

        try:
            with store_guard("rating insert"):
                await db.ratings.insert_one(rating.model_dump())
        except DuplicateKeyError:
            logger.debug(f"Rating for request {rating.request_id} already written")

        await self._increment_aggregate(rating)

        with store_guard("rating request close"):
            await db.rating_requests.update_one(
                {"request_id": rating.request_id},
                {"$set": {"recorded_at": utc_now()}},
            )

    def _require_pending(self, request: RatingRequest) -> None:
        if request.status == RatingRequestStatus.SUBMITTED:
            raise AlreadySubmittedError()
        if request.status == RatingRequestStatus.EXPIRED:
            raise ExpiredError()

    async def _mark_expired(self, request: RatingRequest) -> None:
        db = get_db()
        with store_guard("rating request expiry"):
            result = await db.rating_requests.update_one(
                {"request_id": request.request_id, "status": RatingRequestStatus.PENDING.value},
                {"$set": {"status": RatingRequestStatus.EXPIRED.value}},
            )
        if result.modified_count:
            await self.feed.publish_rating_resolved(
                request.from_user_id, request.request_id, RatingRequestStatus.EXPIRED.value
            )

    async def _increment_aggregate(self, rating: Rating) -> None:
        """
        Fold one rating into the target's counters with a single $inc.

        The request id is pushed in the same update and the filter skips
        aggregates that already hold it, so a repeated call changes nothing.
        On an existing aggregate that filter misses and the upsert collides
        with the unique user_id index.
        """
        db = get_db()
        prefix = ROLE_FIELDS[rating.to_user_role]

        inc = {f"{prefix}.count": 1, f"{prefix}.total": rating.rating}
        for category, score in rating.categories.items():
            inc[f"{prefix}.categories.{category}.count"] = 1
            inc[f"{prefix}.categories.{category}.total"] = score

        try:
            with store_guard("rating aggregate update"):
                await db.user_ratings.update_one(
                    {"user_id": rating.to_user_id, "applied_requests": {"$ne": rating.request_id}},
                    {
                        "$inc": inc,
                        "$push": {"applied_requests": rating.request_id},
                        "$set": {"updated_at": rating.created_at},
                    },
                    upsert=True,
                )
        except DuplicateKeyError:
            logger.debug(f"Aggregate of {rating.to_user_id} already includes {rating.request_id}")

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Mark every pending request past expires_at as expired."""
        db = get_db()
        now = now or utc_now()
        with store_guard("rating request sweep"):
            result = await db.rating_requests.update_many(
                {"status": RatingRequestStatus.PENDING.value, "expires_at": {"$lte": now}},
                {"$set": {"status": RatingRequestStatus.EXPIRED.value}},
            )
        return result.modified_count

    async def list_pending_requests(self, user_id: str) -> PendingRatingList:
        """Pending, unexpired requests where the user is the rater."""
        db = get_db()
        now = utc_now()

        with store_guard("rating request listing"):
            await db.rating_requests.update_many(
                {
                    "from_user_id": user_id,
                    "status": RatingRequestStatus.PENDING.value,
                    "expires_at": {"$lte": now},
                },
                {"$set": {"status": RatingRequestStatus.EXPIRED.value}},
            )

            cursor = db.rating_requests.find(
                {"from_user_id": user_id, "status": RatingRequestStatus.PENDING.value},
                {"_id": 0},
            ).sort("created_at", -1)
            requests = [RatingRequest(**doc) async for doc in cursor]

        return PendingRatingList(requests=requests, count=len(requests))

    async def get_user_ratings(self, user_id: str) -> UserRatingAggregate:
        """Both role summaries of a user, with badges."""
        db = get_db()
        with store_guard("rating aggregate lookup"):
            doc = await db.user_ratings.find_one(
                {"user_id": user_id}, {"_id": 0, "applied_requests": 0}
            )
        doc = doc or {}
        return UserRatingAggregate(
            user_id=user_id,
            as_driver=summarize(doc.get("as_driver")),
            as_passenger=summarize(doc.get("as_passenger")),
        )

    async def list_received_ratings(
        self, user_id: str, role: Optional[str] = None, limit: int = 20
    ) -> List[ReceivedRating]:
        """Most recent ratings a user received. Anonymous raters are hidden."""
        db = get_db()
        query: Dict[str, Any] = {"to_user_id": user_id}
        if role:
            query["to_user_role"] = ParticipantRole(role).value

        with store_guard("received ratings listing"):
            cursor = db.ratings.find(query, {"_id": 0}).sort("created_at", -1).limit(limit)
            docs = [doc async for doc in cursor]

        return [
            ReceivedRating(
                rating=doc["rating"],
                categories=doc.get("categories", {}),
                comment=doc.get("comment"),
                from_user_id=None if doc.get("is_anonymous") else doc["from_user_id"],
                from_user_role=doc["from_user_role"],
                created_at=doc["created_at"],
            )
            for doc in docs
        ]

    async def rebuild_aggregate(self, user_id: str) -> UserRatingAggregate:
        """
        Recompute a user's counters from the ratings collection.

        Used to repair an aggregate after a crash between the rating insert
        and the counter update.
        """
        db = get_db()
        counters: Dict[str, Dict[str, Any]] = {
            "as_driver": {"count": 0, "total": 0, "categories": {}},
            "as_passenger": {"count": 0, "total": 0, "categories": {}},
        }
        applied: List[str] = []

        with store_guard("rating replay"):
            async for doc in db.ratings.find({"to_user_id": user_id}):
                bucket = counters[ROLE_FIELDS[doc["to_user_role"]]]
                applied.append(doc["request_id"])
                bucket["count"] += 1
                bucket["total"] += doc["rating"]
                for category, score in (doc.get("categories") or {}).items():
                    cat = bucket["categories"].setdefault(category, {"count": 0, "total": 0})
                    cat["count"] += 1
                    cat["total"] += score

            await db.user_ratings.replace_one(
                {"user_id": user_id},
                {
                    "user_id": user_id,
                    **counters,
                    "applied_requests": applied,
                    "updated_at": utc_now(),
                },
                upsert=True,
            )

        logger.info(
            f"Rebuilt rating aggregate of {user_id}: "
            f"{counters['as_driver']['count']} as driver, "
            f"{counters['as_passenger']['count']} as passenger"
        )
        return UserRatingAggregate(
            user_id=user_id,
            as_driver=summarize(counters["as_driver"]),
            as_passenger=summarize(counters["as_passenger"]),
        )
