"""
Noted.AI Backend: Feature Quota Service
=======================================

What:  Check-and-consume for the four metered AI features.
Why:   A read-then-increment in application code lets two concurrent requests
       both pass on the last remaining unit. Doing both in one conditional
       UPDATE closes that gap.
How:   UPDATE ... SET usage = usage + 1 WHERE id = :id AND <allowed>.
       rowcount 1 → consumed; rowcount 0 → denied (or user vanished).

Request flow:
    check()    in memory, before the provider call; 403 early when the
               allowance is already used up. Takes no lock.
    consume()  after generation succeeds. The row lock it takes lasts only
               until the request commits, and a consume that loses a race
               for the last unit still gets 403.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from noted.exceptions import NotFoundError, QuotaExceededError
from noted.models.user import FEATURES, UNLIMITED, User, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaGrant:
    """Outcome of a successful consume: the counter after the charge and the plan limit."""

    feature: str
    usage: int
    limit: int


class QuotaService:
    """Stateless; the session is passed in per call."""

    def check(self, user: User, feature: str) -> None:
        """Raise QuotaExceededError if the loaded user row has no unit left."""
        if not user.can_use_feature(feature):
            logger.info("Quota denied: user=%s feature=%s", user.id, feature)
            raise QuotaExceededError(
                feature=feature,
                current_usage=user.feature_usage(feature),
                limit=user.feature_limit(feature),
            )

    async def consume(self, db: AsyncSession, user_id: UUID, feature: str) -> QuotaGrant:
        """
        Atomically charge one unit of `feature` to the user.

        Raises:
            QuotaExceededError: Allowance used up (→ 403 with currentUsage/limit).
            NotFoundError: The user row no longer exists.
        """
        columns = FEATURES[feature]
        usage_col = getattr(User, columns.usage)
        limit_col = getattr(User, columns.limit)

        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(
                or_(
                    User.plan == "university",
                    limit_col == UNLIMITED,
                    usage_col < limit_col,
                )
            )
            .values({columns.usage: usage_col + 1, "last_active": utcnow()})
            .returning(usage_col, limit_col)
        )
        row = (await db.execute(stmt)).first()

        if row is not None:
            usage, limit = row
            logger.debug("Quota consumed: user=%s feature=%s usage=%d/%d", user_id, feature, usage, limit)
            return QuotaGrant(feature=feature, usage=usage, limit=limit)

        # Denied: read the current numbers for the error body
        current = (
            await db.execute(select(usage_col, limit_col).where(User.id == user_id))
        ).first()
        if current is None:
            raise NotFoundError(resource="User", resource_id=str(user_id))

        usage, limit = current
        logger.info("Quota denied: user=%s feature=%s usage=%d limit=%d", user_id, feature, usage, limit)
        raise QuotaExceededError(feature=feature, current_usage=usage, limit=limit)


quota_service = QuotaService()
