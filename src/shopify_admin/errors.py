# src/shopify_admin/errors.py
from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base class for everything raised while talking to the store."""


class NetworkError(StorefrontError):
    """Transport failure or non-2xx response. Never retried by the client."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RemoteError(StorefrontError):
    """Top-level GraphQL `errors` in the response body."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        messages = "; ".join(str(e.get("message", e)) for e in errors)
        super().__init__(f"Shopify GraphQL errors: {messages}")

    @property
    def is_throttled(self) -> bool:
        for e in self.errors:
            code = (e.get("extensions") or {}).get("code")
            if code == "THROTTLED" or "THROTTLED" in str(e.get("message", "")):
                return True
        return False


class RetryableError(RemoteError):
    """Throttled request; safe to repeat after a backoff."""


class BusinessError(StorefrontError):
    """`userErrors` returned by a mutation. Deterministic, never retried."""

    def __init__(self, operation: str, user_errors: List[Dict[str, Any]]):
        self.operation = operation
        self.user_errors = user_errors
        super().__init__("; ".join(self.messages))

    @property
    def messages(self) -> List[str]:
        return [str(e.get("message", e)) for e in self.user_errors]


class StagingError(StorefrontError):
    pass


class TransferError(StorefrontError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProcessingFailed(StorefrontError):
    """The remote platform reported the resource as FAILED."""

    def __init__(self, message: str, resource_id: str = ""):
        super().__init__(message)
        self.resource_id = resource_id


class ProcessingTimeout(StorefrontError):
    """Polling budget ran out before a terminal state.

    Not a verdict: the resource may still become ready. `reference` holds
    whatever the caller can use in the meantime.
    """

    def __init__(self, message: str, reference: Any = None):
        super().__init__(message)
        self.reference = reference


class ReconciliationError(StorefrontError):
    def __init__(self, kind: str, key: str, reason: str):
        super().__init__(f"{kind} '{key}': {reason}")
        self.kind = kind
        self.key = key
        self.reason = reason


class BlobStoreError(StorefrontError):
    pass


class BlobCleanupError(BlobStoreError):
    """The install went through but its temporary blob could not be removed."""

    def __init__(self, message: str, entity: Any = None):
        super().__init__(message)
        self.entity = entity
