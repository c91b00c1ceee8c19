"""
Premium subscriptions paid over UPI.

There is no payment gateway: the user pays through a UPI deep link,
reports the transaction id, and an admin approves or rejects the
request by hand. Approval activates the premium plan for the paid
period.
"""
import logging
from typing import List, Optional
from urllib.parse import urlencode, quote

import config
from auth.models import db, SubscriptionRequest, User
from core.errors import SubscriptionRequestError
from core.models import SubscriptionTier

logger = logging.getLogger(__name__)

PLAN_TYPES = ('monthly', 'yearly')
REQUEST_STATUSES = ('pending', 'approved', 'rejected')


def _check_plan(plan_type: str) -> None:
    if plan_type not in PLAN_TYPES:
        raise SubscriptionRequestError(f"Unknown plan type '{plan_type}' (expected monthly or yearly)")


def plan_amount(plan_type: str) -> int:
    """Price in INR for a plan."""
    _check_plan(plan_type)
    return config.YEARLY_PRICE_INR if plan_type == 'yearly' else config.MONTHLY_PRICE_INR


def build_upi_link(plan_type: str, reference_id: str) -> str:
    """UPI deep link that opens the payer's app with amount and note filled in."""
    amount = plan_amount(plan_type)
    params = {
        'pa': config.UPI_ID,
        'pn': config.UPI_PAYEE_NAME,
        'am': amount,
        'cu': 'INR',
        'tn': f"{plan_type.capitalize()} Subscription",
        'tr': reference_id,
    }
    return 'upi://pay?' + urlencode(params, quote_via=quote)


def submit_request(user: User, transaction_id: str, plan_type: str,
                   screenshot_url: Optional[str] = None) -> SubscriptionRequest:
    """Record a reported UPI payment for admin review."""
    _check_plan(plan_type)
    transaction_id = (transaction_id or '').strip()
    if not transaction_id:
        raise SubscriptionRequestError("Transaction id is required")

    duplicate = SubscriptionRequest.query.filter(
        SubscriptionRequest.transaction_id == transaction_id,
        SubscriptionRequest.status.in_(('pending', 'approved'))
    ).first()
    if duplicate is not None:
        raise SubscriptionRequestError(
            f"Transaction {transaction_id} was already submitted ({duplicate.status})"
        )

    request = SubscriptionRequest(
        user_id=user.id,
        transaction_id=transaction_id,
        amount=plan_amount(plan_type),
        plan_type=plan_type,
        status='pending',
        screenshot_url=screenshot_url
    )
    db.session.add(request)
    db.session.commit()

    logger.info(f"Subscription request {request.id} submitted by user {user.id} ({plan_type})")
    return request


def _get_pending(request_id: int) -> SubscriptionRequest:
    request = db.session.get(SubscriptionRequest, request_id)
    if request is None:
        raise SubscriptionRequestError(f"Request {request_id} not found")
    if not request.is_pending:
        raise SubscriptionRequestError(f"Request {request_id} was already {request.status}")
    return request


def approve_request(request_id: int) -> SubscriptionRequest:
    """Approve a pending request and activate premium for the paid period."""
    request = _get_pending(request_id)
    request.mark_decided('approved')
    request.user.activate_plan(
        SubscriptionTier.PREMIUM.value,
        duration_days=config.PLAN_DURATION_DAYS[request.plan_type]
    )
    db.session.commit()

    logger.info(f"Approved subscription request {request_id} for user {request.user_id}")
    return request


def reject_request(request_id: int) -> SubscriptionRequest:
    request = _get_pending(request_id)
    request.mark_decided('rejected')
    db.session.commit()

    logger.info(f"Rejected subscription request {request_id}")
    return request


def list_requests(status: Optional[str] = None) -> List[SubscriptionRequest]:
    """Requests newest first, optionally filtered by status."""
    query = SubscriptionRequest.query
    if status:
        if status not in REQUEST_STATUSES:
            raise SubscriptionRequestError(f"Unknown status '{status}'")
        query = query.filter_by(status=status)
    return query.order_by(SubscriptionRequest.created_at.desc()).all()


def cancel_subscription(user: User) -> User:
    """Cancel an active premium plan; the account falls back to the free limit."""
    identity = user.to_identity()
    if not identity.is_premium:
        raise SubscriptionRequestError("No active premium subscription to cancel")

    user.cancel_plan()
    db.session.commit()

    logger.info(f"User {user.id} canceled their premium subscription")
    return user
