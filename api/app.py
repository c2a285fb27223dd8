import logging

from flask import Flask, jsonify

from api.dispatch_routes import dispatch_bp
from api.master_routes import master_bp
from api.results_routes import results_bp
from config.settings import settings
from core.errors import NotFoundError, StoreError, ValidationError
from integrations.mongo_handler import get_store

logger = logging.getLogger(__name__)


def create_app(store=None) -> Flask:
    """Build the Flask app; `store` defaults to the configured MongoStore."""
    app = Flask(__name__)
    app.config["STORE"] = store if store is not None else get_store()

    for blueprint in (dispatch_bp, master_bp, results_bp):
        app.register_blueprint(blueprint, url_prefix="/api")

    @app.route("/health")
    def health():
        return jsonify({"status": "Backend is running"})

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc):
        return jsonify({"success": False, "error": str(exc)}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return jsonify({"success": False, "error": str(exc)}), 404

    @app.errorhandler(StoreError)
    def handle_store_error(exc):
        logger.error(f"Store error: {exc}")
        return jsonify({"success": False, "error": str(exc)}), 500

    return app


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app()
    logger.info(f"Server running on port {settings.PORT}")
    app.run(host="0.0.0.0", port=settings.PORT, debug=False)


if __name__ == "__main__":
    main()
