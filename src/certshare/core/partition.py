"""Static work partitioning across independent workers.

Workers never talk to each other; each one keeps only the records whose
key hashes to its own slot. The hash is djb2 over the UTF-16 code units of
the key, reduced to an unsigned 32-bit value, so slots match logs written
by earlier deployments of the tool.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from certshare.contracts.records import Participant


def stable_hash(key: str) -> int:
    """djb2 hash of ``key`` as an unsigned 32-bit integer."""
    value = 5381
    data = key.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = ((value << 5) + value + unit) & 0xFFFFFFFF
    return value


def owning_slot(key: str, total_slots: int) -> int:
    """Slot in ``[0, total_slots)`` that owns ``key``.

    Raises:
        ValueError: If total_slots is not positive.
    """
    if total_slots <= 0:
        raise ValueError(f"total_slots must be positive, got {total_slots}")
    return stable_hash(key) % total_slots


def in_partition(participant: Participant, shard_total: int, shard_index: int) -> bool:
    """Whether this worker owns the participant.

    ``shard_total == 0`` disables partitioning: every worker owns everything.
    """
    if shard_total <= 0:
        return True
    return owning_slot(participant.partition_key, shard_total) == shard_index


def select_partition(participants: Iterable[Participant], shard_total: int, shard_index: int) -> Iterator[Participant]:
    """Yield the participants owned by ``shard_index``, preserving order."""
    for participant in participants:
        if in_partition(participant, shard_total, shard_index):
            yield participant
