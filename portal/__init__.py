import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from config import config

db = SQLAlchemy()
login_manager = LoginManager()
csrf = CSRFProtect()


@login_manager.unauthorized_handler
def unauthorized():
    """API clients get a 401 instead of a redirect to a login page"""
    return jsonify({'error': 'Authentication required'}), 401


def configure_logging(app):
    """Route portal.* loggers through the Flask handler at the configured level"""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(level)
    portal_logger = logging.getLogger('portal')
    portal_logger.setLevel(level)
    if not portal_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
        portal_logger.addHandler(handler)


def create_app(config_name=None):
    """Application factory"""
    if config_name is None:
        config_name = os.environ.get('FLASK_CONFIG', 'default')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    # Ensure instance folder exists for the default SQLite database
    os.makedirs(app.instance_path, exist_ok=True)

    from portal.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from portal.routes.main import main_bp
    from portal.routes.auth import auth_bp
    from portal.routes.setup import setup_bp
    from portal.routes.users import users_bp
    from portal.routes.work_orders import work_orders_bp
    from portal.routes.sewing import sewing_bp
    from portal.routes.finishing import finishing_bp
    from portal.routes.cutting import cutting_bp
    from portal.routes.storage import storage_bp
    from portal.routes.dashboard import dashboard_bp
    from portal.routes.billing import billing_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(setup_bp, url_prefix='/setup')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(work_orders_bp, url_prefix='/work-orders')
    app.register_blueprint(sewing_bp, url_prefix='/sewing')
    app.register_blueprint(finishing_bp, url_prefix='/finishing')
    app.register_blueprint(cutting_bp, url_prefix='/cutting')
    app.register_blueprint(storage_bp, url_prefix='/storage')
    app.register_blueprint(dashboard_bp, url_prefix='/dashboard')
    app.register_blueprint(billing_bp, url_prefix='/billing')

    from portal.cli import register_commands
    register_commands(app)

    # Create database tables
    with app.app_context():
        import portal.models  # noqa: F401
        db.create_all()

    app.logger.info('Production portal %s started (%s)', app.config['PORTAL_VERSION'], config_name)
    return app
