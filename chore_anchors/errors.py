"""Error taxonomy for anchor operations and store adapters."""


class AnchorError(Exception):
    """Base class for every anchor failure."""


class AnchorValidationError(AnchorError):
    """Candidate anchor rejected before any store call."""


class MissingId(AnchorError):
    """Update attempted on a record without an id."""


class AnchorStoreError(AnchorError):
    """Failure reported by a remote store adapter."""


class StoreUnavailable(AnchorStoreError):
    """The store could not be reached."""


class StoreRejected(AnchorStoreError):
    """The store was reached but refused the operation."""


class AnchorNotFound(AnchorStoreError):
    """The target anchor does not exist in the store."""

    def __init__(self, anchor_id: str):
        super().__init__(f"Anchor {anchor_id} not found")
        self.anchor_id = anchor_id
