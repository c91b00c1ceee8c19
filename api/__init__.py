"""
JSON API blueprints.
"""

from api.routes import usage_bp, account_bp

__all__ = ['usage_bp', 'account_bp']
