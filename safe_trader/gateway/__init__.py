from .base import HttpGateway
from .clob import ClobGateway
from .relayer import SafeRelayer, RelayerTransaction, build_builder_headers
from .data_api import PositionsClient

__all__ = [
    "HttpGateway",
    "ClobGateway",
    "SafeRelayer",
    "RelayerTransaction",
    "build_builder_headers",
    "PositionsClient",
]
