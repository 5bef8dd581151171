import os
import sys
import logging
from datetime import datetime

from flask import Flask, request, jsonify, g
from flask_login import LoginManager
from flask_migrate import Migrate
from passlib.hash import pbkdf2_sha256
from werkzeug.exceptions import HTTPException

from models import db, User, Unit
from config import Config
from extensions import limiter
from routes.utils import cache
from routes.validators import ValidationError
from routes.permissions import ALL_PERMISSIONS, permission_names, ADMIN_USERNAME, DEV_USERNAME
from routes.auth import auth_bp, load_token_user
from routes.users import user_bp
from routes.products import products_bp
from routes.units import units_bp
from routes.customers import customers_bp
from routes.sales import sales_bp
from routes.purchase_history import purchase_history_bp
from routes.dashboard import dashboard_bp
from routes.logs import logs_bp
from routes.system_config import config_bp
from routes.license import license_bp
from routes.database_view import database_view_bp
from routes.license_utils import has_valid_license

logger = logging.getLogger(__name__)

DEFAULT_UNITS = ('kg', 'g', 't', 'L', 'mL', 'pcs', 'btl', 'box', 'pack', 'dz')

# Reachable without a stored license when enforcement is on.
LICENSE_EXEMPT_PREFIXES = ('/api/license', '/api/auth', '/api/health')

BLUEPRINTS = (
    auth_bp, user_bp, products_bp, units_bp, customers_bp, sales_bp,
    purchase_history_bp, dashboard_bp, logs_bp, config_bp, license_bp, database_view_bp,
)


def _bearer_token():
    header = request.headers.get('Authorization', '')
    parts = header.split(None, 1)
    if len(parts) == 2 and parts[0].lower() == 'bearer':
        return parts[1].strip()
    return None


def create_app(config_overrides=None):
    # Optional: keep working dir consistent when frozen
    if getattr(sys, 'frozen', False):
        try:
            os.chdir(str(Config.BASE_DIR))
        except OSError:
            logger.exception("Failed to chdir to BASE_DIR in frozen mode")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Cache and rate limiter
    cache.init_app(app)
    limiter.init_app(app)

    # DB and migrations (engine is bound here, so overrides must already be applied)
    db.init_app(app)
    Migrate(app, db)

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    # --- Login Manager ---
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        try:
            uid = int(user_id)
        except (TypeError, ValueError):
            return None
        return db.session.get(User, uid)

    @login_manager.request_loader
    def load_user_from_request(req):
        token = _bearer_token()
        if not token:
            return None
        return load_token_user(token)

    @login_manager.unauthorized_handler
    def unauthorized():
        if not _bearer_token():
            return jsonify({'success': False, 'error': 'Access denied. No token provided.'}), 401
        if g.get('token_error') == 'inactive':
            return jsonify({'success': False, 'error': 'User not found or inactive'}), 401
        return jsonify({'success': False, 'error': 'Invalid or expired token.'}), 403

    @app.before_request
    def check_license():
        if not app.config.get('LICENSE_ENFORCED'):
            return None
        path = request.path
        if not path.startswith('/api/') or path.startswith(LICENSE_EXEMPT_PREFIXES):
            return None
        if not has_valid_license():
            return jsonify({'success': False, 'error': 'A valid license is required.'}), 403
        return None

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'OK', 'timestamp': datetime.utcnow().isoformat() + 'Z'})

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'error': 'Route not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({'success': False, 'error': f'Too many requests: {e.description}'}), 429

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'error': e.description}), e.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        try:
            db.session.rollback()
        except Exception:
            logger.exception("Rollback after unhandled error failed")
        return jsonify({'success': False, 'error': str(e)}), 500

    return app


def seed_essential_data(app):
    """Seeds default units, the admin account and (if configured) the dev account."""
    with app.app_context():
        try:
            if Unit.query.count() == 0:
                logger.info("Seeding default units...")
                for value in DEFAULT_UNITS:
                    db.session.add(Unit(value=value))

            if not User.query.filter_by(username=ADMIN_USERNAME).first():
                logger.info("Creating default admin user")
                admin = User(
                    username=ADMIN_USERNAME,
                    full_name='Administrator',
                    password_hash=pbkdf2_sha256.hash(app.config.get('ADMIN_DEFAULT_PASSWORD') or '123'),
                )
                admin.permissions = permission_names(ALL_PERMISSIONS)
                db.session.add(admin)

            dev_password = app.config.get('DEV_PASSWORD')
            if dev_password and not User.query.filter_by(username=DEV_USERNAME).first():
                logger.info("Creating developer user")
                dev = User(
                    username=DEV_USERNAME,
                    full_name='Developer',
                    password_hash=pbkdf2_sha256.hash(dev_password),
                )
                dev.permissions = permission_names(ALL_PERMISSIONS)
                db.session.add(dev)

            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Error seeding essential data")
            raise
