"""
Role-based permissions and subscription rules.

Plans are rows in the ``Role`` table rather than constants, so old plans can
stay around (``is_legacy``) for grandfathered users while new ones are sold.
The first half of this module is pure rules over a role and a subscription;
the second half reads and writes the role and subscription tables.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from django.db.models import Case, IntegerField, Value, When
from django.utils import timezone

from .models import (
    BillingPeriod,
    Role,
    SubscriptionHistory,
    SubscriptionStatus,
    UserSubscription,
)
from .utils import round_half_up

logger = logging.getLogger(__name__)

FREE_ROLE_ID = 'role_free'

TIER_ORDER = ['FREE', 'PRO', 'TEAM', 'ENTERPRISE']

LIMIT_FIELDS = ('max_workspaces', 'max_projects', 'max_team_members')

UNLIMITED = 'unlimited'


@dataclass
class UserRoleInfo:
    """A user's role together with the subscription granting it."""
    role: Role
    subscription: UserSubscription


# ==================== Feature checks ====================

def has_feature(role: Role, feature: str) -> bool:
    """
    Check whether a role unlocks a feature.

    Boolean flags are returned as-is; a numeric 0/1 flag is read as a
    boolean. Anything else (limits, names, unknown fields) is not a feature.
    """
    value = getattr(role, feature, None)

    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in (0, 1):
        return value == 1

    return False


def _limit(role: Role, limit_field: str) -> Optional[int]:
    if limit_field not in LIMIT_FIELDS:
        raise ValueError(f"Unknown limit field: {limit_field}")
    return getattr(role, limit_field)


def can_create_resource(role: Role, limit_field: str, current_count: int) -> bool:
    """Whether one more workspace/project/team member fits in the plan."""
    limit = _limit(role, limit_field)
    if limit is None:
        return True
    return current_count < limit


def get_remaining_quota(role: Role, limit_field: str, current_count: int) -> Union[int, str]:
    limit = _limit(role, limit_field)
    if limit is None:
        return UNLIMITED
    return max(0, limit - current_count)


# ==================== Subscription rules ====================

def is_subscription_active(subscription: UserSubscription) -> bool:
    return subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


def is_grandfathered(subscription: UserSubscription) -> bool:
    return subscription.is_grandfathered in (True, 1)


def get_upgrade_message(role: Role, feature: str) -> str:
    if role.name == 'FREE':
        return f"Upgrade to Pro to unlock {feature}. Starting at $12/month."

    if role.name.startswith('PRO'):
        return f"Upgrade to Team to unlock {feature}. Starting at $19/user/month."

    if role.name == 'TEAM':
        return f"Contact us for Enterprise to unlock {feature}."

    return f"Upgrade your plan to unlock {feature}."


def get_effective_monthly_price(subscription: UserSubscription) -> int:
    """Monthly price in cents; yearly plans are spread over 12 months."""
    if subscription.billing_period == BillingPeriod.YEARLY:
        return round_half_up(subscription.price_cents / 12)

    if subscription.billing_period == BillingPeriod.LIFETIME:
        return 0

    return subscription.price_cents


def should_show_grandfathered_badge(role: Role, subscription: UserSubscription) -> bool:
    return (
        is_grandfathered(subscription)
        or bool(role.is_legacy)
        or subscription.billing_period == BillingPeriod.LIFETIME
    )


def get_grandfathered_text(subscription: UserSubscription) -> str:
    if subscription.billing_period == BillingPeriod.LIFETIME:
        return 'Lifetime Access'

    if subscription.grandfathered_reason == 'founder':
        return 'Founder Plan'

    if subscription.grandfathered_reason == 'early_adopter':
        return 'Early Adopter Pricing'

    return 'Legacy Plan'


def _tier_index(role: Role) -> int:
    # PRO_LEGACY and friends rank with their base tier; unknown names get -1
    base = role.name.split('_')[0]
    return TIER_ORDER.index(base) if base in TIER_ORDER else -1


def can_upgrade_to(current_role: Role, target_role: Role) -> bool:
    """Upgrades go to a higher, active, non-legacy tier."""
    if current_role.pk == target_role.pk:
        return False

    if not target_role.is_active or target_role.is_legacy:
        return False

    return _tier_index(target_role) > _tier_index(current_role)


def can_downgrade_to(current_role: Role, target_role: Role) -> bool:
    """Downgrades go to a lower active tier (legacy tiers allowed)."""
    if current_role.pk == target_role.pk:
        return False

    if not target_role.is_active:
        return False

    return _tier_index(target_role) < _tier_index(current_role)


# ==================== Queries ====================

def get_user_role(user_id: str) -> Optional[UserRoleInfo]:
    """The user's current role and subscription, or ``None`` if they have none."""
    subscription = (
        UserSubscription.objects.select_related('role')
        .filter(user_id=user_id)
        .first()
    )
    if subscription is None:
        return None
    return UserRoleInfo(role=subscription.role, subscription=subscription)


def get_active_roles() -> List[Role]:
    """Purchasable roles, cheapest tier first."""
    tier_rank = Case(
        *[When(name=name, then=Value(rank)) for rank, name in enumerate(TIER_ORDER, start=1)],
        default=Value(99),
        output_field=IntegerField(),
    )
    return list(
        Role.objects.filter(is_active=True)
        .annotate(tier_rank=tier_rank)
        .order_by('tier_rank', 'name')
    )


def get_role_by_id(role_id: str) -> Optional[Role]:
    return Role.objects.filter(pk=role_id).first()


def create_free_subscription(user_id: str) -> UserSubscription:
    """
    Put a new user on the free plan.

    Raises ``Role.DoesNotExist`` if the free role has not been seeded.
    """
    free_role = Role.objects.get(pk=FREE_ROLE_ID)
    now = timezone.now()

    subscription = UserSubscription.objects.create(
        user_id=user_id,
        role=free_role,
        status=SubscriptionStatus.ACTIVE,
        price_cents=0,
        currency='USD',
        billing_period=BillingPeriod.MONTHLY,
        started_at=now,
        is_grandfathered=False,
        created_at=now,
        updated_at=now,
    )
    logger.info("Created free subscription %s for user %s", subscription.pk, user_id)
    return subscription


def record_subscription_change(
    user_id: str,
    old_role_id: Optional[str],
    new_role_id: str,
    old_price_cents: Optional[int],
    new_price_cents: int,
    reason: str
) -> SubscriptionHistory:
    """Append a row to the subscription history."""
    entry = SubscriptionHistory.objects.create(
        user_id=user_id,
        old_role_id=old_role_id,
        new_role_id=new_role_id,
        old_price_cents=old_price_cents,
        new_price_cents=new_price_cents,
        reason=reason,
        changed_at=timezone.now(),
    )
    logger.info(
        "Subscription change for user %s: %s -> %s (%s)",
        user_id, old_role_id, new_role_id, reason
    )
    return entry
