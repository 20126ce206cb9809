"""
Bitrelay.

Balance synchronization engine for a multi-coin payment relay.
"""

__version__ = "0.1.0"
