"""
Web module: JSON API and server-rendered pages.
"""
from web.api import api_bp
from web.pages import pages_bp
from web.auth import login_required, roles_required, current_user

__all__ = [
    "api_bp",
    "pages_bp",
    "login_required",
    "roles_required",
    "current_user"
]
