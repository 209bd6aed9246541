from supabase import create_client, Client
from shirokuma.config import get_settings


def get_supabase_admin() -> Client:
    """Service role client, used for report uploads to Storage."""
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key
    )
