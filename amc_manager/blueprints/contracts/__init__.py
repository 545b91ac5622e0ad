"""
amc_manager/blueprints/contracts/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import contracts_bp  # noqa: F401
