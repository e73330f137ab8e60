"""
Flask routes orchestrator for the batch translation API

Registers the route blueprints:

- blueprints/health_routes.py: Health check
- blueprints/batch_routes.py: Streaming endpoint and batch job management
"""
from flask import jsonify

from lingua_scripter.core.llm.factory import create_provider_from_settings
from .blueprints import create_batch_blueprint, create_health_blueprint


def configure_routes(app, state_manager, store, start_batch_job,
                     provider_factory=create_provider_from_settings):
    """
    Configure Flask routes by registering all blueprints

    Args:
        app: Flask application instance
        state_manager: Batch state manager
        store: Project store
        start_batch_job: Function to start batch jobs
        provider_factory: Builds a provider from GenerationSettings
    """
    app.register_blueprint(create_health_blueprint())
    app.register_blueprint(create_batch_blueprint(state_manager, store, start_batch_job, provider_factory))

    _register_error_handlers(app)


def _register_error_handlers(app):
    """Register global error handlers"""

    @app.errorhandler(404)
    def route_not_found(error):
        return jsonify({"error": "API Endpoint not found"}), 404

    @app.errorhandler(500)
    def internal_server_error(error):
        import traceback
        tb_str = traceback.format_exc()
        print(f"INTERNAL SERVER ERROR: {error}\nTRACEBACK:\n{tb_str}")
        return jsonify({"error": "Internal server error", "details": str(error)}), 500
