"""JSON encoding for cache snapshots shared by the persistence backends."""

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from atmowise.cache_store.base import SNAPSHOT_VERSION, SnapshotPairs
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_store/codec")


def _json_default(obj):
    """Provide JSON serialization for datetimes, enums and dataclasses."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    return str(obj)


def encode_snapshot(entries: SnapshotPairs) -> bytes:
    """Serialize ordered (key, entry) pairs with a version envelope."""
    envelope = {
        "version": SNAPSHOT_VERSION,
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "entries": [[key, data] for key, data in entries],
    }
    return json.dumps(envelope, default=_json_default).encode("utf-8")


def decode_snapshot(raw: bytes | str) -> Optional[SnapshotPairs]:
    """Parse a snapshot; None for corrupt data or an incompatible version."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        envelope = json.loads(text)
    except (UnicodeDecodeError, ValueError) as exc:
        logger.error("Failed to decode cache snapshot: %s", exc)
        return None
    found = envelope.get("version") if isinstance(envelope, dict) else None
    if found != SNAPSHOT_VERSION:
        logger.warning(
            "Ignoring cache snapshot with incompatible version",
            extra={"expected": SNAPSHOT_VERSION, "found": found},
        )
        return None
    pairs: SnapshotPairs = []
    for item in envelope.get("entries") or []:
        if isinstance(item, (list, tuple)) and len(item) == 2 and isinstance(item[1], dict):
            pairs.append((str(item[0]), item[1]))
    return pairs
