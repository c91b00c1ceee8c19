"""
Authentication and admin routes.
"""

import logging
from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, current_user
from auth.models import db, User, UserUsage, FriendCode, SubscriptionRequest
from auth.decorators import login_required, admin_required
from auth.identity import refresh_identity
from api.context import ledger_for_request
from core.errors import FriendCodeError, SubscriptionRequestError
from services import friend_codes, subscriptions

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')
admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


# ============================================
# AUTH ROUTES
# ============================================

@auth_bp.route('/register', methods=['POST'])
def register():
    """Create a free account."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').lower().strip()
    name = (data.get('name') or '').strip()
    password = data.get('password') or ''

    errors = []
    if not email or '@' not in email:
        errors.append('A valid email is required.')
    if not name:
        errors.append('Name is required.')
    if len(password) < 8:
        errors.append('Password must be at least 8 characters.')
    if errors:
        return jsonify({'errors': errors}), 400

    if User.query.filter_by(email=email).first() is not None:
        return jsonify({'errors': ['An account with this email already exists.']}), 409

    user = User(email=email, name=name, role='user', is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    logger.info(f"Registered user {user.id}")
    return jsonify(user.to_dict()), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Sign in.

    When the request carries a browser profile key, the profile's ledger
    is reconciled with the account's counter straight away, so a user
    who already spent downloads elsewhere sees the right remaining count.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').lower().strip()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Please enter both email and password.'}), 400

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        return jsonify({'error': 'Invalid email or password.'}), 401

    if not user.is_active:
        return jsonify({'error': 'Your account has been deactivated.'}), 403

    user.update_last_login()
    db.session.commit()
    login_user(user, remember=bool(data.get('remember')))

    payload = {'user': user.to_dict()}
    ledger = ledger_for_request()
    if ledger is not None:
        payload['sync'] = ledger.reconcile().to_dict()
        payload['usage'] = ledger.snapshot().to_dict()
    return jsonify(payload)


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    """Current profile, reloaded from the database."""
    identity = refresh_identity(current_user.id)
    payload = current_user.to_dict()
    payload['has_subscription'] = identity.has_subscription
    return jsonify(payload)


# ============================================
# ADMIN ROUTES
# ============================================

@admin_bp.route('/', methods=['GET'])
@admin_required
def dashboard():
    """Simple aggregate counts for the admin dashboard."""
    total_downloads = db.session.query(db.func.coalesce(db.func.sum(UserUsage.downloads_used), 0)).scalar()
    return jsonify({
        'total_users': User.query.count(),
        'premium_users': User.query.filter_by(subscription_tier='premium', subscription_status='active').count(),
        'friend_users': User.query.filter_by(subscription_tier='friend', subscription_status='active').count(),
        'pending_requests': SubscriptionRequest.query.filter_by(status='pending').count(),
        'unused_friend_codes': FriendCode.query.filter_by(is_active=True).count(),
        'total_downloads': int(total_downloads),
    })


@admin_bp.route('/friend-codes', methods=['POST'])
@admin_required
def create_friend_codes():
    data = request.get_json(silent=True) or {}
    try:
        codes = friend_codes.generate_friend_codes(
            count=int(data.get('count', 1)),
            fmt=data.get('format')
        )
    except (FriendCodeError, ValueError) as e:
        return jsonify({'error': getattr(e, 'reason', str(e))}), 400
    return jsonify({'success': True, 'codes': [c.to_dict() for c in codes], 'count': len(codes)})


@admin_bp.route('/friend-codes', methods=['GET'])
@admin_required
def list_friend_codes():
    return jsonify([c.to_dict() for c in friend_codes.list_friend_codes()])


@admin_bp.route('/friend-codes/<int:code_id>/toggle', methods=['POST'])
@admin_required
def toggle_friend_code(code_id):
    try:
        friend_code = friend_codes.toggle_friend_code(code_id)
    except FriendCodeError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify(friend_code.to_dict())


@admin_bp.route('/subscriptions', methods=['GET'])
@admin_required
def list_subscriptions():
    try:
        requests_ = subscriptions.list_requests(request.args.get('status'))
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify([r.to_dict() for r in requests_])


@admin_bp.route('/subscriptions/<int:request_id>/approve', methods=['POST'])
@admin_required
def approve_subscription(request_id):
    try:
        sub_request = subscriptions.approve_request(request_id)
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify(sub_request.to_dict())


@admin_bp.route('/subscriptions/<int:request_id>/reject', methods=['POST'])
@admin_required
def reject_subscription(request_id):
    try:
        sub_request = subscriptions.reject_request(request_id)
    except SubscriptionRequestError as e:
        return jsonify({'error': e.reason}), 400
    return jsonify(sub_request.to_dict())
