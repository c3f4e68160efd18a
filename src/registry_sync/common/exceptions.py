"""Registry-Sync exception hierarchy."""


class RegistrySyncError(Exception):
    """Base exception for all Registry-Sync errors."""

    def __init__(self, message: str = "", code: str = "REGISTRY_SYNC_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ChainUnavailableError(RegistrySyncError):
    """Raised when the chain height cannot be determined before a backfill."""

    def __init__(self, message: str = "Unable to query current chain height"):
        super().__init__(message, code="CHAIN_UNAVAILABLE")


class ChainNotConfiguredError(RegistrySyncError):
    """Raised when a chain source is requested without connection settings."""

    def __init__(self, message: str = "RPC URL and contract address are required"):
        super().__init__(message, code="CHAIN_NOT_CONFIGURED")


class InvalidQueryError(RegistrySyncError):
    """Raised when a read query carries a malformed id, address or date."""

    def __init__(self, message: str = "Invalid query parameter"):
        super().__init__(message, code="INVALID_QUERY")
