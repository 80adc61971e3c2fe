"""
Supabase Client

Provides the service-role Supabase client used by the weekly analysis job.
The job reads and writes across every company, so it always runs with the
service role key (bypasses RLS).
"""

from supabase import Client, ClientOptions, create_client

from feedback_health.core.config import (
    STORE_TIMEOUT_SECONDS,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    validate_supabase_config,
)

# Module-level client, initialized lazily
_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client using the service_role (admin) key.

    WARNING: This client BYPASSES Row Level Security.
    Only use for background jobs that need access across all users.
    """
    global _service_client
    if _service_client is None:
        validate_supabase_config()
        # Bound each PostgREST request so a slow call fails instead of
        # finishing after the job has already recorded it as failed
        _service_client = create_client(
            SUPABASE_URL,
            SUPABASE_SERVICE_ROLE_KEY,
            options=ClientOptions(postgrest_client_timeout=STORE_TIMEOUT_SECONDS),
        )
    return _service_client
