import logging

from flask import Flask, jsonify
from flask_login import LoginManager
from flask_migrate import Migrate

from config import Config
from models import db, Owner
from routes import register_blueprints

DEFAULT_APP_URL = 'http://localhost:5005'


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    Migrate(app, db)

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        owner = db.session.get(Owner, int(user_id))
        if owner is None or not owner.is_active:
            return None
        return owner

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    if app.config.get('FLASK_ENV') == 'production' and app.config.get('APP_URL') == DEFAULT_APP_URL:
        app.logger.warning("APP_URL is not set; form links will point at %s", DEFAULT_APP_URL)

    # Register blueprints
    register_blueprints(app)

    return app

app = create_app()

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5005, debug=True)
