"""
API blueprints
"""
from .agent import agent_bp
from .admin import admin_bp
from .bookings import bookings_bp
from .profiles import profiles_bp

__all__ = ['agent_bp', 'admin_bp', 'bookings_bp', 'profiles_bp']
