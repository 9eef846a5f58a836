"""Persistence of provisioning results (Neon/Postgres and Supabase)."""

from .records import ProvisioningRecord, STATUS_FAILED, STATUS_READY, generate_id
from .neon import NeonStore, store_to_neon
from .supabase import SupabaseStore, send_to_supabase

__all__ = [
    "ProvisioningRecord",
    "STATUS_FAILED",
    "STATUS_READY",
    "generate_id",
    "NeonStore",
    "store_to_neon",
    "SupabaseStore",
    "send_to_supabase",
]
