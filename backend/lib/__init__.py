"""Backend utilities"""
from .supabase_client import get_supabase_client, create_auth_client
from .auth import get_current_user, require_student, require_tutor

__all__ = [
    "get_supabase_client",
    "create_auth_client",
    "get_current_user",
    "require_student",
    "require_tutor",
]
