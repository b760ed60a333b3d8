"""HTTP surface of the realtime service.

Example:
    from src.api import create_app
    app = create_app()
"""

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.auth import SessionStore, extract_session_id
from src.api.app import create_app

__all__ = [
    "APIConfig",
    "DEFAULT_API_CONFIG",
    "SessionStore",
    "extract_session_id",
    "create_app",
]
