from functools import lru_cache
from supabase import create_client, Client, ClientOptions

from app.core.config import get_settings

settings = get_settings()


@lru_cache
def supabase_admin() -> Client:
    """
    Create a Supabase client with the service role key.

    Use cases:
      - uploading vendor documents to Storage
      - admin Auth operations (create / delete credentials, sign-out)
      - any operation that needs to bypass RLS

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.

    Raises:
        RuntimeError: if SUPABASE_SERVICE_ROLE_KEY is not set.
    """
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY in .env")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


def supabase_auth_client() -> Client:
    """
    Create a throwaway anon-key client for a single password sign-in.

    Not cached: the client stores the session it signs into, so sharing
    one between requests would leak sessions across users.
    """
    return create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_KEY,
        options=ClientOptions(persist_session=False, auto_refresh_token=False),
    )
