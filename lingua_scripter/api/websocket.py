"""
WebSocket handlers for real-time batch progress
"""
import logging

from flask import request
from flask_socketio import emit

logger = logging.getLogger(__name__)


def configure_websocket_handlers(socketio, state_manager):
    """Configure WebSocket event handlers"""

    @socketio.on('connect')
    def handle_websocket_connect():
        logger.info(f'WebSocket client connected: {request.sid}')
        emit('connected', {'message': 'Connected to translation server via WebSocket'})

    @socketio.on('disconnect')
    def handle_websocket_disconnect():
        logger.info(f'WebSocket client disconnected: {request.sid}')


def emit_batch_update(socketio, batch_id, data_to_emit, state_manager):
    """
    Emit WebSocket update for batch progress

    Args:
        socketio: SocketIO instance (None disables emission)
        batch_id (str): Batch job ID
        data_to_emit (dict): Data to send
        state_manager: Batch state manager instance
    """
    if socketio is None:
        return

    batch = state_manager.get_batch(batch_id)
    if batch is None:
        return

    payload = dict(data_to_emit)
    payload['batch_id'] = batch_id
    payload.setdefault('status', batch.get('status'))
    payload.setdefault('completedCount', batch['progress'].get('completedCount', 0))
    payload.setdefault('total', batch['progress'].get('total', 0))
    try:
        socketio.emit('batch_update', payload, namespace='/')
    except Exception as e:
        logger.error(f"WebSocket emission error for {batch_id}: {e}")
