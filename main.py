# main.py
"""
School ERP API
Fee ledger, online payments, attendance and notifications under /api
"""

import os
import sys
import logging
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

# Ensure project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# --- local modules ---
from config import config
from database import init_database
from cli_commands import register_cli_commands


def create_app(config_name=None) -> Flask:
    """Create the API application for the given config name"""
    config_name = config_name or os.environ.get('FLASK_CONFIG', 'default')
    config_class = config[config_name]

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Logging
    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='[%(levelname)s] %(asctime)s %(name)s - %(message)s',
    )
    logger = logging.getLogger(__name__)

    # DB init
    config_instance = config_class()
    init_database(config_instance.get_database_uri(), **config_instance.SQLALCHEMY_ENGINE_OPTIONS)

    if app.config.get('AUTO_CREATE_TABLES'):
        from init_db import run_on_startup
        if not run_on_startup(app.config):
            logger.warning("Database initialization had issues, continuing with existing state")

    # CLI
    register_cli_commands(app)

    # API blueprint
    from api_routes import create_api_blueprint
    app.register_blueprint(create_api_blueprint())
    logger.info("✅ API blueprint registered")

    @app.errorhandler(HTTPException)
    def http_error(e):
        code = (e.name or 'error').upper().replace(' ', '_')
        return jsonify({'error': e.description, 'code': code}), e.code

    @app.errorhandler(500)
    def ie(e):
        return jsonify({'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get('PORT', 5000)))
