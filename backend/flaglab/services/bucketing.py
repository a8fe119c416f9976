"""Deterministic bucketing for staged rollout and weighted assignment.

Every user/flag (or user/experiment) pair maps to one of 100 buckets via a
pinned hash, so the same inputs land in the same bucket in every process and
every language:

    position = fnv1a_32(utf8(user_id + subject_id)) % 100
    bucket   = position / 100                       # in [0, 1)

fnv1a_32 is the 32-bit FNV-1a hash (offset basis 2166136261, prime
16777619). Python's built-in hash() is salted per process and must not be
used here.
"""
from typing import Iterable, Optional

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
BUCKET_COUNT = 100


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a hash of ``data``."""
    h = FNV_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def bucket_position(user_id: str, subject_id: str) -> int:
    """Integer bucket 0-99 for a user and a flag or experiment id."""
    return fnv1a_32(f"{user_id}{subject_id}".encode("utf-8")) % BUCKET_COUNT


def bucket(user_id: str, subject_id: str) -> float:
    """Normalized bucket in [0, 1)."""
    return bucket_position(user_id, subject_id) / BUCKET_COUNT


def weighted_index(position: int, weights: Iterable[float]) -> Optional[int]:
    """
    Pick an index by walking cumulative percentage weights.

    Returns the index of the first weight whose running total reaches
    ``position`` (a bucket position 0-99, compared in percent units).
    Non-positive weights never win. Returns None when nothing qualifies,
    including an empty list or an all-zero list.

    Example:
        >>> weighted_index(42, [30, 30, 40])
        1
        >>> weighted_index(95, [50, 30])  # uncovered tail
    """
    cumulative = 0.0
    for index, weight in enumerate(weights):
        if weight is None or weight <= 0:
            continue
        cumulative += weight
        if cumulative >= position:
            return index
    return None


class RolloutBucketer:
    """Percentage rollout on top of the shared bucket primitive.

    A user enabled at rollout P stays enabled at any P2 >= P: their position
    depends only on (user_id, flag_id).
    """

    def bucket(self, user_id: str, flag_id: str) -> float:
        return bucket(user_id, flag_id)

    def in_rollout(self, user_id: str, flag_id: str, rollout_percentage: float) -> bool:
        """True when the user's bucket <= rollout_percentage / 100 (and rollout > 0)."""
        position = bucket_position(user_id, flag_id)
        return weighted_index(position, [rollout_percentage]) == 0
