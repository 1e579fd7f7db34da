"""
Database client configuration.
Uses Supabase for PostgreSQL + Storage.

The backend writes campaigns, tracking events and unsubscribes on behalf of
users who authenticate with Google rather than Supabase Auth, so every query
goes through the service-role client and is scoped by ``user_email`` in code.
"""

import os
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

if not SUPABASE_URL:
    raise ValueError("SUPABASE_URL must be set in environment variables")

# None when the service key is missing; stores and health checks report 503.
supabase_admin: Client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY) if SUPABASE_SERVICE_KEY else None
