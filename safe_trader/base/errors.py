class SafeTraderError(Exception):
    """Base exception for all safe-trader errors"""
    pass


class ExchangeError(SafeTraderError):
    """Exchange-specific error"""
    pass


class NetworkError(SafeTraderError):
    """Network connectivity error"""
    pass


class RateLimitError(SafeTraderError):
    """Rate limit exceeded"""
    pass


class AuthenticationError(SafeTraderError):
    """Authentication failed"""
    pass


class InsufficientFunds(SafeTraderError):
    """Insufficient funds for operation"""
    pass


class InvalidOrder(SafeTraderError):
    """Invalid order parameters"""
    pass


class MarketNotFound(SafeTraderError):
    """Market does not exist"""
    pass


class UserRejectedError(SafeTraderError):
    """The wallet holder declined a signature or network switch"""
    pass


class WrongNetworkError(SafeTraderError):
    """Wallet is connected to a different chain than the one required"""

    def __init__(self, actual: int, required: int):
        super().__init__(f"Wrong network: wallet is on chain {actual}, switch to chain {required}")
        self.actual = actual
        self.required = required


class StaleCredentialsError(AuthenticationError):
    """Stored API credentials were rejected by the exchange"""
    pass


class SessionError(SafeTraderError):
    """Trading session is missing or not ready"""
    pass


class RelayerError(SafeTraderError):
    """Relayed transaction failed or could not be submitted"""
    pass
