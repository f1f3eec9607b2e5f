from collections.abc import Mapping

from flask import Flask, jsonify, request
from flask_cors import CORS

from .booking import BookingEngine
from .catalog import ServiceCatalog
from .config import Config
from .errors import SalonError
from .extensions import db
from .notifications import FeedbackNotifier
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)

    # Allow the booking frontend and admin panel to talk to the backend
    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )

    app.extensions["booking_engine"] = BookingEngine(
        ServiceCatalog(), FeedbackNotifier.from_config(app.config)
    )

    @app.errorhandler(SalonError)
    def handle_salon_error(exc: SalonError):
        db.session.rollback()
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.error, exc.message)
        else:
            app.logger.info("Rejected %s %s: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "not_found", "message": "Route not found"}), 404

    @app.before_request
    def log_request():
        app.logger.debug("%s %s", request.method, request.path)

    register_routes(app)

    return app
