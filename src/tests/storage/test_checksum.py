"""Tests for stored result checksums."""

from datetime import datetime

from swarm_slicer.models.result_models import StoredSubtaskResult
from swarm_slicer.storage.checksum import (
    canonical_payload,
    compute_checksum,
    verify_checksum,
)


def make_result(**overrides):
    data = {
        "subtask_id": "a",
        "agent_id": "agent",
        "content": "output",
        "success": True,
        "workflow_id": "wf",
        "metadata": {"b": 1, "a": 2},
    }
    data.update(overrides)
    return StoredSubtaskResult(**data)


def test_checksum_is_sha256_hex():
    """Test checksum is a 64 character hex digest."""
    checksum = compute_checksum(make_result())
    assert len(checksum) == 64
    int(checksum, 16)


def test_checksum_stable():
    """Test equal results hash equally regardless of dict order."""
    first = make_result(metadata={"b": 1, "a": 2})
    second = make_result(metadata={"a": 2, "b": 1})
    assert compute_checksum(first) == compute_checksum(second)


def test_content_change_detected():
    """Test any content change alters the checksum."""
    assert compute_checksum(make_result()) != compute_checksum(make_result(content="output!"))


def test_bookkeeping_fields_excluded():
    """Test storage time and the checksum itself are not hashed."""
    plain = make_result()
    stamped = make_result(storage_timestamp=datetime.now(), checksum="abc")

    assert compute_checksum(plain) == compute_checksum(stamped)
    assert "storage_timestamp" not in canonical_payload(stamped)


def test_verify_checksum():
    """Test verification needs a matching, non-empty checksum."""
    result = make_result()
    assert not verify_checksum(result)

    result.checksum = compute_checksum(result)
    assert verify_checksum(result)

    result.content = "tampered"
    assert not verify_checksum(result)
