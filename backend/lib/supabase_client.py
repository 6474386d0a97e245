"""
Supabase clients for backend operations
"""
import os
from supabase import create_client, Client
from dotenv import load_dotenv

# Load environment variables
load_dotenv()
load_dotenv('../.env')  # Also try parent directory

_supabase_client: Client = None


def _require_env(*names: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    raise ValueError(f"{' or '.join(names)} must be set in environment")


def get_supabase_client() -> Client:
    """Get or create the service-role Supabase client singleton"""
    global _supabase_client

    if _supabase_client is None:
        url = _require_env("SUPABASE_URL")
        # Service role key: the backend enforces ownership itself
        key = _require_env("SUPABASE_SERVICE_KEY")
        _supabase_client = create_client(url, key)

    return _supabase_client


def create_auth_client() -> Client:
    """
    Create a fresh client for sign-in/sign-up calls.

    Signing in swaps the client's auth header to the user's token, so auth
    flows never run on the shared service-role client.
    """
    url = _require_env("SUPABASE_URL")
    key = _require_env("SUPABASE_KEY", "SUPABASE_SERVICE_KEY")
    return create_client(url, key)
