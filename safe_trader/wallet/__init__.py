from .adapter import WalletAdapter, LocalAccountWallet

__all__ = ["WalletAdapter", "LocalAccountWallet"]
