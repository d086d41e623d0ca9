"""
Monthly usage metering and quota checks.
- Usage is summed from usage_events since the 1st of the current month (UTC).
- Tier comes from the user's active subscription; default starter.
- Limit -1 means unlimited.
"""
import logging
import math
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alqemist.models.subscription import Subscription, SubscriptionStatus
from alqemist.models.usage_event import UsageEvent, UsageEventType
from alqemist.utils.clock import start_of_month, start_of_next_month, utcnow

logger = logging.getLogger(__name__)

GIB = 1024 * 1024 * 1024


@dataclass(frozen=True)
class UsageLimits:
    api_calls: int
    tokens: int
    storage: int  # bytes
    tool_executions: int


@dataclass(frozen=True)
class SubscriptionTier:
    id: str
    name: str
    limits: UsageLimits
    price: int  # cents per month


SUBSCRIPTION_TIERS: dict[str, SubscriptionTier] = {
    "starter": SubscriptionTier("starter", "Starter", UsageLimits(10_000, 1_000_000, 1 * GIB, 100), 999),
    "professional": SubscriptionTier(
        "professional", "Professional", UsageLimits(100_000, 10_000_000, 10 * GIB, 1_000), 2999
    ),
    "enterprise": SubscriptionTier("enterprise", "Enterprise", UsageLimits(-1, -1, 100 * GIB, -1), 9999),
}
DEFAULT_TIER = "starter"

# Base cost per unit, in cents
BASE_UNIT_COSTS = {
    UsageEventType.API_CALL.value: Decimal("0.001"),
    UsageEventType.TOKEN_USAGE.value: Decimal("0.000001"),
    UsageEventType.FILE_UPLOAD.value: Decimal("0.01"),
    UsageEventType.ATTACHMENT_PROCESSING.value: Decimal("0.05"),
    UsageEventType.TOOL_EXECUTION.value: Decimal("0.1"),
}
TIER_MULTIPLIERS = {"enterprise": Decimal("0.5"), "professional": Decimal("0.8")}

STORAGE_TYPES = (UsageEventType.FILE_UPLOAD.value, UsageEventType.ATTACHMENT_PROCESSING.value)


@dataclass
class UsageSnapshot:
    api_calls: int = 0
    tokens: int = 0
    storage: int = 0
    tool_executions: int = 0
    cost: int = 0


@dataclass
class LimitCheck:
    within_limits: bool
    usage: UsageSnapshot
    limits: UsageLimits
    tier: SubscriptionTier

    def to_dict(self) -> dict:
        return {
            "within_limits": self.within_limits,
            "usage": asdict(self.usage),
            "limits": asdict(self.limits),
            "tier": {"id": self.tier.id, "name": self.tier.name, "price": self.tier.price},
        }


@dataclass
class RequestDecision:
    allowed: bool
    reason: str | None = None
    reset_time: datetime | None = None


@dataclass
class NewUsageEvent:
    type: str
    resource: str
    quantity: int = 1
    metadata: dict = field(default_factory=dict)
    cost: int = 0


def _within(usage: int, limit: int) -> bool:
    return limit == -1 or usage <= limit


def _exceeds(usage: int, quantity: int, limit: int) -> bool:
    return limit != -1 and usage + quantity > limit


def calculate_usage_cost(kind: str, quantity: int, tier: str = DEFAULT_TIER) -> int:
    """Cost in cents, rounded up. Unknown kinds cost nothing."""
    base = BASE_UNIT_COSTS.get(kind, Decimal(0))
    multiplier = TIER_MULTIPLIERS.get(tier, Decimal(1))
    return math.ceil(base * Decimal(quantity) * multiplier)


def subscription_tier(db: Session, user_id: str) -> str:
    """Tier of the user's active subscription, or starter."""
    row = (
        db.query(Subscription.tier)
        .filter(Subscription.user_id == user_id, Subscription.status == SubscriptionStatus.ACTIVE.value)
        .order_by(Subscription.created_at.desc())
        .first()
    )
    if row and row[0] in SUBSCRIPTION_TIERS:
        return row[0]
    return DEFAULT_TIER


class UsageTracker:
    def __init__(self, subscription_lookup: Callable[[Session, str], str] = subscription_tier):
        self._subscription_lookup = subscription_lookup

    def track(self, db: Session, user_id: str, event: NewUsageEvent) -> None:
        """Append one usage row. Never raises: metering must not break the request."""
        try:
            db.add(
                UsageEvent(
                    user_id=user_id,
                    type=event.type,
                    resource=event.resource,
                    quantity=max(0, int(event.quantity)),
                    metadata_=event.metadata or {},
                    cost=event.cost or 0,
                    timestamp=utcnow(),
                )
            )
            db.commit()
        except Exception:
            logger.exception("Failed to track usage for user %s (%s)", user_id, event.type)
            db.rollback()

    def get_current_usage(self, db: Session, user_id: str, now: datetime | None = None) -> UsageSnapshot:
        usage = UsageSnapshot()
        since = start_of_month(now or utcnow())
        try:
            rows = (
                db.query(UsageEvent.type, func.sum(UsageEvent.quantity), func.sum(UsageEvent.cost))
                .filter(UsageEvent.user_id == user_id, UsageEvent.timestamp >= since)
                .group_by(UsageEvent.type)
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to read usage for user %s", user_id)
            db.rollback()
            return usage

        for kind, quantity, cost in rows:
            quantity = int(quantity or 0)
            if kind == UsageEventType.API_CALL.value:
                usage.api_calls += quantity
            elif kind == UsageEventType.TOKEN_USAGE.value:
                usage.tokens += quantity
            elif kind in STORAGE_TYPES:
                usage.storage += quantity
            elif kind == UsageEventType.TOOL_EXECUTION.value:
                usage.tool_executions += quantity
            usage.cost += int(cost or 0)
        return usage

    def get_user_tier(self, db: Session, user_id: str) -> SubscriptionTier:
        try:
            tier_id = self._subscription_lookup(db, user_id)
        except SQLAlchemyError:
            logger.exception("Failed to read subscription for user %s", user_id)
            db.rollback()
            tier_id = DEFAULT_TIER
        return SUBSCRIPTION_TIERS.get(tier_id, SUBSCRIPTION_TIERS[DEFAULT_TIER])

    def check_limits(self, db: Session, user_id: str, now: datetime | None = None) -> LimitCheck:
        tier = self.get_user_tier(db, user_id)
        usage = self.get_current_usage(db, user_id, now)
        limits = tier.limits
        within = (
            _within(usage.api_calls, limits.api_calls)
            and _within(usage.tokens, limits.tokens)
            and _within(usage.storage, limits.storage)
            and _within(usage.tool_executions, limits.tool_executions)
        )
        return LimitCheck(within, usage, limits, tier)

    def can_make_request(
        self,
        db: Session,
        kind: str,
        quantity: int = 1,
        user_id: str = "",
        now: datetime | None = None,
    ) -> RequestDecision:
        now = now or utcnow()
        reset_time = start_of_next_month(now)
        check = self.check_limits(db, user_id, now)
        if not check.within_limits:
            return RequestDecision(False, "Monthly usage limit exceeded", reset_time)

        usage, limits = check.usage, check.limits
        if kind == UsageEventType.API_CALL.value and _exceeds(usage.api_calls, quantity, limits.api_calls):
            return RequestDecision(False, "API call limit exceeded", reset_time)
        if kind == UsageEventType.TOKEN_USAGE.value and _exceeds(usage.tokens, quantity, limits.tokens):
            return RequestDecision(False, "Token limit exceeded", reset_time)
        if kind == UsageEventType.TOOL_EXECUTION.value and _exceeds(
            usage.tool_executions, quantity, limits.tool_executions
        ):
            return RequestDecision(False, "Tool execution limit exceeded", reset_time)
        return RequestDecision(True)

    def get_usage_analytics(self, db: Session, user_id: str, start: datetime, end: datetime) -> dict:
        """Daily series (api calls, tokens, cost), per-resource counts and total cost for [start, end]."""
        empty = {"daily": [], "by_resource": [], "total_cost": 0}
        try:
            events = (
                db.query(UsageEvent)
                .filter(UsageEvent.user_id == user_id, UsageEvent.timestamp.between(start, end))
                .order_by(UsageEvent.timestamp.asc())
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to read usage analytics for user %s", user_id)
            db.rollback()
            return empty

        daily: "OrderedDict[str, dict]" = OrderedDict()
        by_resource: dict[str, dict] = {}
        total_cost = 0
        for e in events:
            day = e.timestamp.date().isoformat()
            bucket = daily.setdefault(day, {"date": day, "api_calls": 0, "tokens": 0, "cost": 0})
            if e.type == UsageEventType.API_CALL.value:
                bucket["api_calls"] += e.quantity
            elif e.type == UsageEventType.TOKEN_USAGE.value:
                bucket["tokens"] += e.quantity
            bucket["cost"] += e.cost or 0

            res = by_resource.setdefault(e.resource, {"resource": e.resource, "count": 0, "cost": 0})
            res["count"] += 1
            res["cost"] += e.cost or 0
            total_cost += e.cost or 0

        return {
            "daily": list(daily.values()),
            "by_resource": sorted(by_resource.values(), key=lambda r: r["count"], reverse=True),
            "total_cost": total_cost,
        }

    def daily_model_usage(self, db: Session, user_id: str, now: datetime | None = None) -> list[dict]:
        """Today's api_call events grouped by model: [{"model_id", "calls", "cost"}]."""
        now = now or utcnow()
        since = now.replace(hour=0, minute=0, second=0, microsecond=0)
        try:
            events = (
                db.query(UsageEvent)
                .filter(
                    UsageEvent.user_id == user_id,
                    UsageEvent.type == UsageEventType.API_CALL.value,
                    UsageEvent.timestamp >= since,
                )
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to read model usage for user %s", user_id)
            db.rollback()
            return []
        per_model: dict[str, dict] = {}
        for e in events:
            model_id = (e.metadata_ or {}).get("model")
            if not model_id:
                continue
            entry = per_model.setdefault(model_id, {"model_id": model_id, "calls": 0, "cost": 0})
            entry["calls"] += e.quantity
            entry["cost"] += e.cost or 0
        return list(per_model.values())
