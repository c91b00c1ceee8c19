"""
JSON API for download quota, friend codes and subscriptions.
"""

import logging
import uuid
from flask import Blueprint, jsonify, request
from flask_login import current_user

import config
from api.context import ledger_for_request
from auth.decorators import login_required, admin_required
from core.errors import FriendCodeError, SubscriptionRequestError
from services import friend_codes, subscriptions

logger = logging.getLogger(__name__)

usage_bp = Blueprint('usage', __name__, url_prefix='/api/usage')
account_bp = Blueprint('account', __name__, url_prefix='/api')


def _missing_profile():
    return jsonify({
        'error': f'Valid browser profile key required ({config.PROFILE_HEADER} header or '
                 f'{config.PROFILE_COOKIE} cookie, characters A-Z a-z 0-9 _ . -)'
    }), 400


def _usage_payload(ledger) -> dict:
    snapshot = ledger.snapshot()
    payload = snapshot.to_dict()
    payload['running_low'] = (
        not snapshot.unlimited
        and 0 < snapshot.remaining <= config.LOW_REMAINING_THRESHOLD
    )
    return payload


# ============================================
# USAGE ROUTES
# ============================================

@usage_bp.route('', methods=['GET'])
def usage_status():
    """Remaining downloads for the requesting profile."""
    ledger = ledger_for_request()
    if ledger is None:
        return _missing_profile()
    return jsonify(_usage_payload(ledger))


@usage_bp.route('/consume', methods=['POST'])
def consume():
    """Consume one download; 402 once the plan limit is reached."""
    ledger = ledger_for_request()
    if ledger is None:
        return _missing_profile()

    data = request.get_json(silent=True) or {}
    edit_id = data.get('edit_id') or str(uuid.uuid4())

    if not ledger.consume_one(edit_id):
        payload = _usage_payload(ledger)
        payload['error'] = 'Download limit reached'
        payload['upgrade'] = 'signup' if not current_user.is_authenticated else 'subscribe'
        return jsonify(payload), 402

    payload = _usage_payload(ledger)
    payload['edit_id'] = edit_id
    return jsonify(payload)


@usage_bp.route('/sync', methods=['POST'])
@login_required
def sync():
    """Reconcile this profile's ledger with the account's server counter now."""
    ledger = ledger_for_request()
    if ledger is None:
        return _missing_profile()

    result = ledger.reconcile()
    payload = _usage_payload(ledger)
    payload['sync'] = result.to_dict()
    return jsonify(payload)


@usage_bp.route('/reset', methods=['POST'])
@admin_required
def reset():
    """Clear the requesting profile's local ledger (admin/debug only)."""
    ledger = ledger_for_request()
    if ledger is None:
        return _missing_profile()

    ledger.reset()
    logger.warning(f"Admin {current_user.id} reset ledger {ledger.storage.key}")
    return jsonify(_usage_payload(ledger))


# ============================================
# ACCOUNT ROUTES
# ============================================

@account_bp.route('/friend-codes/redeem', methods=['POST'])
@login_required
def redeem_friend_code():
    data = request.get_json(silent=True) or {}
    try:
        user = friend_codes.redeem_friend_code(current_user, data.get('code'))
    except FriendCodeError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify({'success': True, 'message': 'Friend code redeemed successfully',
                    'user': user.to_dict()})


@account_bp.route('/subscriptions/upi-link', methods=['GET'])
@login_required
def upi_link():
    """Deep link for paying a plan over UPI."""
    plan_type = request.args.get('plan', 'monthly')
    reference_id = f"GT{current_user.id}-{uuid.uuid4().hex[:8].upper()}"
    try:
        link = subscriptions.build_upi_link(plan_type, reference_id)
        amount = subscriptions.plan_amount(plan_type)
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify({'link': link, 'amount': amount, 'plan_type': plan_type,
                    'reference_id': reference_id})


@account_bp.route('/subscriptions', methods=['POST'])
@login_required
def submit_subscription():
    """Report a UPI payment for admin approval."""
    data = request.get_json(silent=True) or {}
    try:
        sub_request = subscriptions.submit_request(
            current_user,
            transaction_id=data.get('transaction_id'),
            plan_type=data.get('plan_type', 'monthly'),
            screenshot_url=data.get('screenshot_url')
        )
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify(sub_request.to_dict()), 201


@account_bp.route('/subscriptions/cancel', methods=['POST'])
@login_required
def cancel_subscription():
    try:
        user = subscriptions.cancel_subscription(current_user)
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify({'success': True, 'message': 'Subscription canceled',
                    'user': user.to_dict()})
