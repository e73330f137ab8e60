"""
Flask web server for batch translation API with WebSocket support
"""
import os
import sys
import logging
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Reduce verbosity of werkzeug (Flask HTTP server logs)
logging.getLogger('werkzeug').setLevel(logging.WARNING)

from lingua_scripter import __version__
from lingua_scripter.config import (
    LLM_PROVIDER,
    DEFAULT_MODEL,
    DATA_DIR,
    PORT,
    HOST
)
from lingua_scripter.core.llm.factory import SUPPORTED_PROVIDERS
from lingua_scripter.api.routes import configure_routes
from lingua_scripter.api.websocket import configure_websocket_handlers
from lingua_scripter.api.handlers import start_batch_job
from lingua_scripter.api.batch_state import get_batch_state_manager
from lingua_scripter.persistence import JsonProjectStore
from lingua_scripter.utils.unified_logger import setup_web_logger


app = Flask(__name__)
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*")

# Thread-safe state manager
state_manager = get_batch_state_manager()
store = JsonProjectStore(DATA_DIR)

# Job logs are routed per batch by the job runner
setup_web_logger()


def validate_configuration():
    """Validate required configuration before starting server"""
    issues = []

    if not PORT or not isinstance(PORT, int):
        issues.append("PORT must be a valid integer")
    if not DEFAULT_MODEL:
        issues.append("DEFAULT_MODEL must be configured")
    if LLM_PROVIDER not in SUPPORTED_PROVIDERS:
        issues.append(f"LLM_PROVIDER must be one of: {', '.join(SUPPORTED_PROVIDERS)}")

    if issues:
        logger.error("\n" + "=" * 70)
        logger.error("CONFIGURATION ERROR")
        logger.error("=" * 70)
        for issue in issues:
            logger.error(f"   - {issue}")
        logger.error("\n   Create a .env file from .env.example, fix the settings above and restart.")
        logger.error("=" * 70 + "\n")
        raise ValueError("Configuration validation failed. See errors above.")

    logger.info("Configuration validated successfully")


# Ensure data directory exists
try:
    os.makedirs(DATA_DIR, exist_ok=True)
    logger.info(f"Data folder '{DATA_DIR}' is ready")
except OSError as e:
    logger.error(f"Critical error: Unable to create data folder '{DATA_DIR}': {e}")
    sys.exit(1)


def start_job_wrapper(batch_id, job):
    """Wrapper to inject dependencies into job starter"""
    start_batch_job(batch_id, job, state_manager, store, socketio)


# Configure routes and WebSocket handlers
configure_routes(app, state_manager, store, start_job_wrapper)
configure_websocket_handlers(socketio, state_manager)


if __name__ == '__main__':
    validate_configuration()

    logger.info("=" * 60)
    logger.info(f"BATCH TRANSLATION SERVER (Version {__version__})")
    logger.info("=" * 60)
    logger.info(f"   - Default provider: {LLM_PROVIDER} ({DEFAULT_MODEL})")
    logger.info(f"   - API: http://{HOST}:{PORT}/api/")
    logger.info(f"   - Health Check: http://{HOST}:{PORT}/api/health")
    logger.info(f"   - Streaming endpoint: http://{HOST}:{PORT}/api/translate-batch-stream")
    logger.info("")
    logger.info("Press Ctrl+C to stop the server")
    logger.info("")

    if HOST == '0.0.0.0':
        logger.warning("Server is binding to 0.0.0.0 (all network interfaces)")
        logger.warning("   For production, use a proper WSGI server like gunicorn:")
        logger.warning("   gunicorn --worker-class eventlet -w 1 --bind 0.0.0.0:5000 translation_api:app")
        logger.info("")

    socketio.run(app, debug=False, host=HOST, port=PORT, allow_unsafe_werkzeug=True)
