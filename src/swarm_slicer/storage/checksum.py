"""Content checksums for stored subtask results."""

import hashlib
import json

from ..models.result_models import StoredSubtaskResult

# Bookkeeping fields that change on every write and are not covered
CHECKSUM_EXCLUDED_FIELDS = {"checksum", "storage_timestamp"}


def canonical_payload(result: StoredSubtaskResult) -> str:
    """Stable JSON rendering of every checksummed field."""
    data = result.model_dump(mode="json", exclude=CHECKSUM_EXCLUDED_FIELDS)
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_checksum(result: StoredSubtaskResult) -> str:
    """
    SHA-256 over the canonical JSON of a stored result.

    Args:
        result: Result to hash

    Returns:
        Hex digest
    """
    return hashlib.sha256(canonical_payload(result).encode("utf-8")).hexdigest()


def verify_checksum(result: StoredSubtaskResult) -> bool:
    return bool(result.checksum) and result.checksum == compute_checksum(result)
