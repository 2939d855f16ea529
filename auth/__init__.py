# Authentication Module - Central import for session auth and user management
"""
Authentication module providing centralized access to login state and user CRUD.
Import this module to access authentication functionality across the application.
"""

from .session_auth import (
    AuthState,
    decode_user,
)

__all__ = [
    "AuthState",
    "decode_user",
]
