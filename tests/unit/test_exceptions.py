"""Unit tests for the relay error taxonomy."""

import pytest
from sqlalchemy.exc import OperationalError

from relay.utils.db_decorators import store_operation
from relay.utils.exceptions import (
    AddressNotFound,
    AllocationConflict,
    KeyDerivationError,
    ProviderError,
    ProviderResponseInvalid,
    ProviderUnavailable,
    RelayError,
    StoreUnavailable,
    UnknownAccount,
    UnknownCoin,
    UnknownCoinAdapter,
    is_fatal,
    is_recoverable,
    must_retry,
)


class TestHierarchy:
    """Tests for exception classes."""

    @pytest.mark.parametrize(
        "exc",
        [
            ProviderUnavailable("p", "down"),
            ProviderResponseInvalid("p", "garbage"),
            UnknownCoinAdapter("xmr"),
            StoreUnavailable("connection refused"),
            AllocationConflict("btc", 3),
            KeyDerivationError("no key"),
            UnknownCoin("xmr"),
            UnknownAccount("shop9"),
            AddressNotFound(42),
        ],
    )
    def test_all_are_relay_errors(self, exc):
        """Every relay error derives from RelayError."""
        assert isinstance(exc, RelayError)

    def test_provider_errors_carry_provider(self):
        """Provider errors name the provider."""
        exc = ProviderUnavailable("blockchair", "HTTP 503")

        assert isinstance(exc, ProviderError)
        assert exc.provider == "blockchair"
        assert str(exc) == "blockchair: HTTP 503"

    def test_allocation_conflict_fields(self):
        """AllocationConflict names coin and index."""
        exc = AllocationConflict("btc", 7)

        assert exc.coin == "btc"
        assert exc.index == 7
        assert "7" in str(exc)


class TestCategories:
    """Tests for handling-strategy helpers."""

    def test_provider_errors_are_recoverable(self):
        """Provider failures are recovered by the scheduler."""
        assert is_recoverable(ProviderUnavailable("p", "x"))
        assert is_recoverable(ProviderResponseInvalid("p", "x"))
        assert not is_recoverable(StoreUnavailable("x"))
        assert not is_recoverable(ValueError("x"))

    def test_allocation_conflict_must_retry(self):
        """Allocation conflicts are retried."""
        assert must_retry(AllocationConflict("btc", 0))
        assert not must_retry(KeyDerivationError("x"))

    def test_unknown_adapter_is_fatal(self):
        """An unbound coin halts startup."""
        assert is_fatal(UnknownCoinAdapter("xmr"))
        assert not is_fatal(UnknownCoin("xmr"))


class TestStoreOperation:
    """Tests for the store error decorator."""

    @pytest.mark.asyncio
    async def test_operational_error_maps_to_store_unavailable(self):
        """Connectivity failures surface as StoreUnavailable."""

        @store_operation
        async def broken():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(StoreUnavailable) as exc_info:
            await broken()
        assert isinstance(exc_info.value.__cause__, OperationalError)

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self):
        """Relay errors raised inside the operation are not rewrapped."""

        @store_operation
        async def missing():
            raise UnknownCoin("xmr")

        with pytest.raises(UnknownCoin):
            await missing()

    @pytest.mark.asyncio
    async def test_result_returned(self):
        @store_operation
        async def ok():
            return 42

        assert await ok() == 42
