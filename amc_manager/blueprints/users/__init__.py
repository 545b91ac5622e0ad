"""
Users blueprint package.
"""

from .routes import users_bp  # noqa: F401
