"""
Standard type definitions for database models.

Provides consistent types for coin amounts and exchange rates.
"""

from sqlalchemy import DECIMAL

# Coin amount type for balances and funds
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999 coin units
MoneyType = DECIMAL(18, 8)

# Fiat exchange rate per coin unit
# Precision: 18 digits total, 8 after decimal point
RateType = DECIMAL(18, 8)
