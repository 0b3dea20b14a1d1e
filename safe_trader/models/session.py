from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union
import time


class SessionStep(Enum):
    DISCONNECTED = "disconnected"
    CONNECT = "connect"
    INITIALIZE = "initialize"
    COMPLETE = "complete"
    ERROR = "error"


class ErrorKind(Enum):
    USER_REJECTED = "user_rejected"
    WRONG_NETWORK = "wrong_network"
    STALE_CREDENTIALS = "stale_credentials"
    RELAYER = "relayer"
    WALLET = "wallet"
    EXCHANGE = "exchange"


@dataclass(frozen=True)
class ApiCredentials:
    key: str
    secret: str
    passphrase: str

    def __repr__(self) -> str:
        return f"ApiCredentials(key={self.key!r}, secret=***, passphrase=***)"

    @property
    def is_complete(self) -> bool:
        return bool(self.key and self.secret and self.passphrase)


@dataclass
class TradingSession:
    """Persisted record of an established trading session for one owner."""

    owner_address: str
    derived_wallet_address: str
    api_credentials: Optional[ApiCredentials] = None
    step: SessionStep = SessionStep.INITIALIZE
    is_safe_deployed: bool = False
    has_approvals: bool = False
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["step"] = self.step.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingSession":
        creds = data.get("api_credentials")
        return cls(
            owner_address=data["owner_address"],
            derived_wallet_address=data["derived_wallet_address"],
            api_credentials=ApiCredentials(**creds) if creds else None,
            step=SessionStep(data.get("step", SessionStep.INITIALIZE.value)),
            is_safe_deployed=bool(data.get("is_safe_deployed", False)),
            has_approvals=bool(data.get("has_approvals", False)),
            created_at=float(data.get("created_at", 0)),
        )


@dataclass(frozen=True)
class Disconnected:
    step = SessionStep.DISCONNECTED


@dataclass(frozen=True)
class Connect:
    owner: str
    step = SessionStep.CONNECT


@dataclass(frozen=True)
class Initialize:
    owner: str
    step = SessionStep.INITIALIZE


@dataclass(frozen=True)
class Complete:
    session: TradingSession
    clob: Any
    relayer: Any
    step = SessionStep.COMPLETE

    @property
    def owner(self) -> str:
        return self.session.owner_address


@dataclass(frozen=True)
class Error:
    owner: str
    kind: ErrorKind
    message: str
    step = SessionStep.ERROR


SessionState = Union[Disconnected, Connect, Initialize, Complete, Error]
