"""Error kinds raised by userstore.

No component retries automatically; callers decide on retry policy.
"""


class StoreError(Exception):
    """Underlying store failure for node, user or archive operations."""

    pass


class StoreConnectionError(StoreError):
    """Raised when the store cannot be opened. Fatal at startup."""

    pass


class UserNotFoundError(StoreError):
    """Raised when the requested user is absent."""

    pass


class UserExistsError(StoreError):
    """Raised on a duplicate user creation attempt."""

    pass


class UnsupportedOperationError(StoreError):
    """Raised for capabilities that are intentionally not implemented."""

    pass


class StoreConfigError(Exception):
    """Raised when StoreOptions configuration is invalid."""

    pass
