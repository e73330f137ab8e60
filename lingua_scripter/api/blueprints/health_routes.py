"""
Health check routes
"""
from flask import Blueprint, jsonify

from lingua_scripter import __version__
from lingua_scripter.config import LLM_PROVIDER, DEFAULT_MODEL, BATCH_SIZE
from lingua_scripter.core.llm.factory import SUPPORTED_PROVIDERS


def create_health_blueprint():
    """Create and configure the health check blueprint"""
    bp = Blueprint('health', __name__)

    @bp.route('/api/health', methods=['GET'])
    def health_check():
        """API health check endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Batch translation API is running",
            "version": __version__,
            "default_provider": LLM_PROVIDER,
            "default_model": DEFAULT_MODEL,
            "batch_size": BATCH_SIZE,
            "supported_providers": list(SUPPORTED_PROVIDERS)
        })

    return bp
