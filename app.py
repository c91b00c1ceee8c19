"""
Flask backend server for GeoTag Pro download quotas.

This module is the composition root: it builds the counter store, the
reconciler, the background sync executor and the per-profile ledger
factory, and hands them to the blueprints through the app.
"""
import atexit
import logging
from concurrent.futures import ThreadPoolExecutor

from flask import Flask, jsonify
from flask_login import LoginManager

import config
from api import usage_bp, account_bp
from api.context import EXTENSION_KEY
from auth import db, User, auth_bp, admin_bp, current_identity
from core.errors import LedgerStorageError
from core.models import ImageLimits
from services.counter_store import CounterStore, RestCounterStore, SQLAlchemyCounterStore
from services.reconciliation import Reconciler
from services.usage_ledger import LedgerFactory

logger = logging.getLogger(__name__)


def build_counter_store(app: Flask, backend: str = None) -> CounterStore:
    """Counter store for the configured backend (sql | rest)."""
    backend = backend or config.COUNTER_BACKEND
    if backend == 'rest':
        if not config.BAAS_SERVICE_KEY:
            logger.warning("BAAS_SERVICE_KEY is not set; REST counter calls will use the anon key")
        return RestCounterStore(
            config.BAAS_URL,
            config.BAAS_ANON_KEY,
            access_token=config.BAAS_SERVICE_KEY or None
        )
    if backend != 'sql':
        raise ValueError(f"Unknown COUNTER_BACKEND '{backend}' (expected sql or rest)")
    return SQLAlchemyCounterStore(app)


def create_app(overrides: dict = None, counter_store: CounterStore = None) -> Flask:
    """
    Build the application.

    Args:
        overrides: Flask config values applied on top of config.py
            (e.g. a test database, LEDGER_DIR, USAGE_SYNC_INLINE)
        counter_store: Use this counter store instead of the configured one
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY
    app.config['SQLALCHEMY_DATABASE_URI'] = config.SQLALCHEMY_DATABASE_URI
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = config.SQLALCHEMY_TRACK_MODIFICATIONS
    app.config['LEDGER_DIR'] = config.LEDGER_DIR
    app.config['USAGE_SYNC_INLINE'] = False
    if overrides:
        app.config.update(overrides)

    db.init_app(app)

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(usage_bp)
    app.register_blueprint(account_bp)

    with app.app_context():
        db.create_all()

    store = counter_store or build_counter_store(app)

    executor = None
    if not app.config['USAGE_SYNC_INLINE']:
        executor = ThreadPoolExecutor(max_workers=config.SYNC_WORKERS, thread_name_prefix='usage-sync')
        atexit.register(executor.shutdown, wait=False)

    app.extensions[EXTENSION_KEY] = LedgerFactory(
        ledger_dir=app.config['LEDGER_DIR'],
        identity_provider=current_identity,
        reconciler=Reconciler(store),
        executor=executor,
        limits=ImageLimits.from_config()
    )

    @app.route('/status', methods=['GET'])
    def status():
        """Health check and status endpoint."""
        return jsonify({
            "status": "ok",
            "counter_backend": type(store).__name__,
            "free_limit": config.FREE_IMAGE_LIMIT,
            "anonymous_limit": config.ANONYMOUS_IMAGE_LIMIT,
        })

    @app.errorhandler(LedgerStorageError)
    def ledger_storage_failed(e):
        logger.error(str(e))
        return jsonify({'error': 'Could not save download history', 'key': e.key}), 500

    logger.info(f"GeoTag app created (counter backend: {type(store).__name__})")
    return app


app = create_app()


if __name__ == '__main__':
    print(f"Starting GeoTag Pro server on {config.HOST}:{config.PORT}")
    print(f"Counter backend: {config.COUNTER_BACKEND}")
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG, threaded=True)
