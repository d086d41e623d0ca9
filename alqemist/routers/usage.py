"""
Usage and quota:
- GET /api/usage - current month usage vs. tier limits, plus cost advice from today's model usage
- GET /api/usage/analytics?days=30 - daily series, per-resource counts, total cost
"""
from datetime import timedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.config import get_settings
from alqemist.database import get_db
from alqemist.dependencies import get_model_catalog, get_usage_tracker
from alqemist.models.user import User
from alqemist.services.model_catalog import ModelCatalog
from alqemist.services.model_optimizer import ModelOptimizer
from alqemist.services.usage_tracker import UsageTracker
from alqemist.utils.clock import start_of_next_month, utcnow

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("")
def get_usage(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    tracker: UsageTracker = Depends(get_usage_tracker),
    catalog: ModelCatalog = Depends(get_model_catalog),
):
    check = tracker.check_limits(db, user.id)
    optimizer = ModelOptimizer(catalog=catalog, tier=check.tier.id, strategy=get_settings().optimization_strategy)
    advice = optimizer.optimize_for_usage(tracker.daily_model_usage(db, user.id), monthly_budget=check.tier.price)
    return {
        **check.to_dict(),
        "reset_time": start_of_next_month(utcnow()).isoformat() + "Z",
        "optimization": {
            "recommendations": advice.recommendations,
            "potential_savings": advice.potential_savings,
            "suggested_tier_upgrade": advice.suggested_tier_upgrade,
        },
    }


@router.get("/analytics")
def get_usage_analytics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    end = utcnow()
    start = end - timedelta(days=days)
    return {
        "start": start.isoformat() + "Z",
        "end": end.isoformat() + "Z",
        **tracker.get_usage_analytics(db, user.id, start, end),
    }
