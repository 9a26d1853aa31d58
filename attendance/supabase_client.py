# attendance/supabase_client.py
from __future__ import annotations

from typing import Any, Dict, List

from supabase import Client, create_client

from attendance.config import Settings
from attendance.errors import SetupError


def create_supabase(settings: Settings) -> Client:
    if not settings.supabase_configured:
        raise SetupError("Missing SUPABASE_URL or SUPABASE_KEY in environment (.env)")
    return create_client(settings.supabase_url, settings.supabase_key)


def get_data(resp: Any) -> List[Dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    return []
