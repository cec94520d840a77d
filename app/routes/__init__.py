"""
Routes package for the CNC scheduling engine
Centralizes all route blueprints
"""
from .conflicts import conflicts_bp
from .displacement import displacement_bp
from .health import health_bp

__all__ = [
    'conflicts_bp',
    'displacement_bp',
    'health_bp',
]
