"""Unit tests for application settings."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from relay.config.settings import CoinConfig, ProviderConfig, Settings


DB_URL = "sqlite+aiosqlite:///:memory:"


class TestSettings:
    """Tests for Settings validation."""

    def test_defaults(self):
        """Polling and session defaults."""
        config = Settings(database_url=DB_URL)

        assert config.balance_wait_min == 300
        assert config.balance_wait_factor == 2.0
        assert config.balance_wait_max == 604800
        assert config.tx_ttl == 900
        assert config.account_limit == Decimal("1000")

    def test_sync_postgres_url_rewritten(self):
        """postgresql:// is switched to the asyncpg driver."""
        config = Settings(database_url="postgresql://u:p@db/relay")

        assert config.database_url == "postgresql+asyncpg://u:p@db/relay"

    def test_unsupported_database_url(self):
        """Only PostgreSQL and SQLite URLs are accepted."""
        with pytest.raises(ValidationError):
            Settings(database_url="mysql://u:p@db/relay")

    def test_wait_bounds(self):
        """The minimum wait may not exceed the maximum."""
        with pytest.raises(ValidationError):
            Settings(database_url=DB_URL, balance_wait_min=1000, balance_wait_max=500)

    def test_factor_below_one(self):
        """The backoff factor is at least 1."""
        with pytest.raises(ValidationError):
            Settings(database_url=DB_URL, balance_wait_factor=0.9)

    def test_provider_defaults_filled(self):
        """Built-in providers get their default access policy."""
        config = Settings(database_url=DB_URL)

        assert config.providers["ethplorer"].rate_limits == [2, 30, 0, 0, 0]
        assert config.providers["blockchain.info"].cool_time == 10.0

    def test_explicit_provider_kept(self):
        """Configured policies are not overwritten by defaults."""
        config = Settings(
            database_url=DB_URL,
            providers={"ethplorer": ProviderConfig(rate_limits=[1], api_key="k")},
        )

        assert config.providers["ethplorer"].rate_limits == [1]
        assert config.providers["ethplorer"].api_key == "k"

    def test_duplicate_coins(self):
        """A coin symbol may be configured once."""
        with pytest.raises(ValidationError):
            Settings(
                database_url=DB_URL,
                coins=[CoinConfig(symbol="btc"), CoinConfig(symbol="BTC")],
            )

    def test_log_level_normalized(self):
        """Log levels are case-insensitive."""
        assert Settings(database_url=DB_URL, log_level="warning").log_level == "WARNING"

        with pytest.raises(ValidationError):
            Settings(database_url=DB_URL, log_level="chatty")

    def test_json_config_file(self, tmp_path, monkeypatch):
        """Coins and accounts can come from the JSON configuration file."""
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({
            "coins": [{"symbol": "btc", "addresses": ["1abc", "1def"]}],
            "accounts": ["shop1"],
            "tx_ttl": 600,
        }))
        monkeypatch.setenv("RELAY_CONFIG", str(path))

        config = Settings(database_url=DB_URL)

        assert config.coins[0].addresses == ["1abc", "1def"]
        assert config.accounts == ["shop1"]
        assert config.tx_ttl == 600


class TestProviderConfig:
    """Tests for provider access policies."""

    def test_too_many_tiers(self):
        """At most five tiers exist."""
        with pytest.raises(ValidationError):
            ProviderConfig(rate_limits=[1, 1, 1, 1, 1, 1])

    def test_negative_tier(self):
        """Tiers are non-negative."""
        with pytest.raises(ValidationError):
            ProviderConfig(rate_limits=[-1])

    def test_cool_time_positive(self):
        """A cooldown must be positive."""
        with pytest.raises(ValidationError):
            ProviderConfig(cool_time=0)

    def test_uses_cooldown(self):
        """Cooldown takes precedence when set."""
        assert ProviderConfig(cool_time=3, rate_limits=[1]).uses_cooldown
        assert not ProviderConfig(rate_limits=[1]).uses_cooldown


class TestCoinConfig:
    """Tests for coin entries."""

    def test_symbol_lowercased(self):
        """Symbols are stored lowercase."""
        assert CoinConfig(symbol=" LTC ").symbol == "ltc"

    def test_empty_symbol(self):
        """A symbol is required."""
        with pytest.raises(ValidationError):
            CoinConfig(symbol="  ")
