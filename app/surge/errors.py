"""Exception taxonomy for the surge pipeline.

Batch-level rejections (raised synchronously by ``prepare``):
  SurgeNotFoundError, EmptySelectionError, NothingToBuildError,
  BatchInProgressError, RateLimitExceededError

Household-level failures (caught at the queue task boundary):
  PacketPersistError

Partial failures (logged by the assembler, never fatal):
  RenderError, app.storage.object_store.ObjectNotFoundError
"""
from __future__ import annotations


class SurgeError(Exception):
    """Base class for surge pipeline errors."""


class SurgeNotFoundError(SurgeError, LookupError):
    def __init__(self, surge_id):
        super().__init__(f"Surge {surge_id} not found")
        self.surge_id = surge_id


class InvalidSurgeError(SurgeError, ValueError):
    """Raised when a surge mutation would violate a surge invariant."""


class EmptySelectionError(SurgeError, ValueError):
    def __init__(self):
        super().__init__("No households specified")


class NothingToBuildError(SurgeError, ValueError):
    def __init__(self):
        super().__init__("Nothing to build: no report types or uploads enabled")


class BatchInProgressError(SurgeError):
    def __init__(self, surge_id):
        super().__init__(f"A packet build is already in progress for surge {surge_id}")
        self.surge_id = surge_id


class RateLimitExceededError(SurgeError):
    def __init__(self, retry_after: float):
        super().__init__(f"Too many prepare requests; retry in {retry_after:.0f}s")
        self.retry_after = retry_after


class MissingOrganizationError(SurgeError):
    """Raised when a household has no organization to evaluate against."""

    def __init__(self, household_id):
        super().__init__(f"Household {household_id} has no organization")
        self.household_id = household_id


class RenderError(SurgeError):
    """Raised when the rendering service cannot produce a report PDF."""


class PacketPersistError(SurgeError):
    """Raised when the merged packet cannot be written to storage."""


class HouseholdNotFoundError(SurgeError, LookupError):
    def __init__(self, household_id):
        super().__init__(f"Household {household_id} not found")
        self.household_id = household_id


class UploadNotFoundError(SurgeError, LookupError):
    def __init__(self, upload_id):
        super().__init__(f"Upload {upload_id} not found")
        self.upload_id = upload_id


class PacketNotFoundError(SurgeError, LookupError):
    def __init__(self, surge_id, household_id):
        super().__init__(f"No packet prepared for household {household_id} in surge {surge_id}")
        self.surge_id = surge_id
        self.household_id = household_id
