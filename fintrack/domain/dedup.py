"""Dedup key derivation for idempotent re-ingestion"""

import hashlib
import re
from fintrack.domain.models import RawMessage
from fintrack.utils.date_utils import truncate_to_minute


def normalize_body(body: str) -> str:
    return re.sub(r"\s+", " ", body or "").strip().lower()


def compute_dedup_key(message: RawMessage) -> str:
    """
    Stable identifier for a raw message: sender + normalized body + minute.

    Re-scanning the same inbox yields the same keys, so already persisted
    messages are recognized regardless of whitespace/case noise or seconds.
    """
    parts = (
        (message.sender or "").strip().lower(),
        normalize_body(message.body),
        truncate_to_minute(message.received_at).isoformat(),
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
