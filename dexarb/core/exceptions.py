"""
Custom exceptions for the DEX arbitrage bot
"""
from typing import Any, Optional


class DexArbitrageException(Exception):
    """Base exception for all custom exceptions"""

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ConfigurationError(DexArbitrageException):
    """Raised when required settings are missing or invalid"""
    pass


class InitializationError(DexArbitrageException):
    """Raised when an exchange adapter cannot reach its RPC or contracts"""
    pass


class TransportError(DexArbitrageException):
    """Raised when a network/RPC call fails"""
    pass


class QueryError(TransportError):
    """Raised when an on-chain read fails"""
    pass


class NoPoolError(DexArbitrageException):
    """Raised when a venue has no pool for the requested pair"""

    def __init__(self, message: str, dex: str = None, token_a: str = None, token_b: str = None):
        super().__init__(message, code="NO_POOL")
        self.dex = dex
        self.token_a = token_a
        self.token_b = token_b


class SimulationFailure(DexArbitrageException):
    """Raised when the pre-flight call of an arbitrage reverts"""
    pass


class ExecutionFailure(DexArbitrageException):
    """Raised when a committed arbitrage transaction fails"""

    def __init__(
        self,
        message: str,
        opportunity: Optional[Any] = None,
        transaction_hash: Optional[str] = None,
        code: str = None
    ):
        super().__init__(message, code)
        self.opportunity = opportunity
        self.transaction_hash = transaction_hash
