"""
Supabase client initialization.

Only the database connection lives here. Repository modules import the shared
`supabase` client from this module; nothing else in the engine does, so the
domain and service layers can be used (and tested) without credentials.

Environment variables required:
- SUPABASE_URL: project URL
- SUPABASE_KEY: server-side API key (the distribution RPC needs write access
  to `customer_batches` and `lead_distributions`)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, create_client  # type: ignore[import-not-found]

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

if not SUPABASE_URL:
    raise RuntimeError("Missing environment variable: SUPABASE_URL")

if not SUPABASE_KEY:
    raise RuntimeError("Missing environment variable: SUPABASE_KEY")

supabase: Client = create_client(SUPABASE_URL, SUPABASE_KEY)

__all__ = ["supabase"]
