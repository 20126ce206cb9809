"""
Exception handling utilities.

Defines the relay error taxonomy and categorizes exceptions
by handling strategy.
"""


class RelayError(Exception):
    """Base class for all relay errors."""
    pass


class ProviderError(RelayError):
    """Raised when a chain-data provider call fails."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or non-success HTTP status."""
    pass


class ProviderResponseInvalid(ProviderError):
    """Unparsable or semantically malformed provider payload."""
    pass


class UnknownCoinAdapter(RelayError):
    """Raised when a coin has no bound provider adapter."""

    def __init__(self, coin: str) -> None:
        self.coin = coin
        super().__init__(f"No provider adapter bound for coin '{coin}'")


class StoreUnavailable(RelayError):
    """Raised when the persistent store cannot be reached."""
    pass


class AllocationConflict(RelayError):
    """Raised when two allocations race for the same address index."""

    def __init__(self, coin: str, index: int) -> None:
        self.coin = coin
        self.index = index
        super().__init__(f"Address index {index} for coin '{coin}' already taken")


class KeyDerivationError(RelayError):
    """Raised when the key-derivation collaborator cannot derive an address."""
    pass


class UnknownCoin(RelayError):
    """Raised when a coin symbol is not present in the store."""

    def __init__(self, coin: str) -> None:
        self.coin = coin
        super().__init__(f"Unknown coin '{coin}'")


class UnknownAccount(RelayError):
    """Raised when an account label is not present in the store."""

    def __init__(self, account: str) -> None:
        self.account = account
        super().__init__(f"Unknown account '{account}'")


class AddressNotFound(RelayError):
    """Raised when an address id does not exist."""

    def __init__(self, address_id: int) -> None:
        self.address_id = address_id
        super().__init__(f"Address {address_id} not found")


# Exception categories based on handling strategy

# Recovered locally by the scheduler - log and retry at the next sweep
RECOVERABLE = (
    ProviderUnavailable,
    ProviderResponseInvalid,
)

# Must retry the whole operation - nothing was committed
MUST_RETRY = (
    AllocationConflict,
)

# Must halt initialization
FATAL = (
    UnknownCoinAdapter,
)


def is_recoverable(exc: Exception) -> bool:
    """
    Check if exception is recovered locally by the scheduler.

    Args:
        exc: Exception to check

    Returns:
        True if the failing check can simply be dropped
    """
    return isinstance(exc, RECOVERABLE)


def must_retry(exc: Exception) -> bool:
    """
    Check if the failed operation must be retried.

    Args:
        exc: Exception to check

    Returns:
        True if exception signals a retryable conflict
    """
    return isinstance(exc, MUST_RETRY)


def is_fatal(exc: Exception) -> bool:
    """
    Check if exception must halt startup.

    Args:
        exc: Exception to check

    Returns:
        True if exception is fatal
    """
    return isinstance(exc, FATAL)
