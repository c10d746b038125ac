"""Exception hierarchy for screenshot diffing and build aggregation."""

from __future__ import annotations


class ShotDiffError(Exception):
    """Base class for every error raised by shotdiff."""


class InvalidBucketPair(ShotDiffError):
    """Base and compare screenshot buckets are the same bucket."""

    def __init__(self, bucket_id: str):
        self.bucket_id = bucket_id
        super().__init__("The base screenshot bucket should be different to the compare one.")


class ImageDiffError(ShotDiffError):
    """Image comparison could not be performed."""


class ImageNotFound(ImageDiffError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Image file not found: {path}")


class ImageDiffFailed(ImageDiffError):
    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to diff image {path}: {reason}")


class InconsistentParallelTotal(ShotDiffError):
    """A parallel batch declared a total different from an earlier batch."""

    field = "parallelTotal"

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__("`parallelTotal` must be the same on every batch")


class InvalidTransition(ShotDiffError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move job from '{current}' to '{target}'")


class JobExpired(ShotDiffError):
    """Completion refused because the unit expired first (veto expiry policy)."""

    def __init__(self, current: str):
        self.current = current
        super().__init__(f"Job expired while '{current}'; late completion refused")


class EntityNotFound(ShotDiffError):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")
