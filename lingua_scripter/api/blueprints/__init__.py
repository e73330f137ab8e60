"""
API Routes
"""
from .batch_routes import create_batch_blueprint
from .health_routes import create_health_blueprint

__all__ = [
    'create_batch_blueprint',
    'create_health_blueprint'
]
