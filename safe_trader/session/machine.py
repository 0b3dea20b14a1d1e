import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

from ..base.config import TradingConfig
from ..base.errors import (
    RelayerError,
    SafeTraderError,
    SessionError,
    StaleCredentialsError,
    UserRejectedError,
    WrongNetworkError,
)
from ..chain.approvals import approval_calls, check_all_approvals
from ..chain.contracts import ContractConfig, get_contract_config
from ..chain.reader import ChainReader
from ..chain.safe import derive_safe_address
from ..gateway.clob import ClobGateway
from ..gateway.relayer import SafeRelayer
from ..models.session import (
    ApiCredentials,
    Complete,
    Connect,
    Disconnected,
    Error,
    ErrorKind,
    Initialize,
    SessionState,
    SessionStep,
    TradingSession,
)
from ..utils.logger import set_verbose
from ..wallet.adapter import WalletAdapter
from .store import SessionStore

logger = logging.getLogger(__name__)

RelayerFactory = Callable[[str, str], SafeRelayer]
StateListener = Callable[[SessionState], None]


class _Superseded(Exception):
    """The account changed while an initialization attempt was in flight."""


class TradingSessionMachine:
    """
    Trading session lifecycle for the connected wallet.

    disconnected -> connect -> initialize -> complete, with error reachable
    from initialize. Transitions are serialized by one lock, and an attempt
    whose account generation is outdated when it resumes is dropped without
    touching state or storage. Nothing retries on its own: leaving error
    takes retry() or switch_network().
    """

    def __init__(
        self,
        wallet: WalletAdapter,
        store: SessionStore,
        config: TradingConfig,
        contracts: Optional[ContractConfig] = None,
        clob: Optional[ClobGateway] = None,
        relayer_factory: Optional[RelayerFactory] = None,
        chain_reader: Optional[ChainReader] = None,
    ):
        self.wallet = wallet
        self.store = store
        self.config = config
        if config.verbose:
            set_verbose(True)
        self.contracts = contracts or get_contract_config(config.chain_id)
        self._clob = clob or ClobGateway(config)
        self._relayer_factory = relayer_factory or self._default_relayer
        self._reader = chain_reader or ChainReader(config.rpc_url, self.contracts)

        self._state: SessionState = Disconnected()
        self._lock = asyncio.Lock()
        self._generation = 0
        self._running_generation: Optional[int] = None
        self._listeners: List[StateListener] = []

    def _default_relayer(self, owner: str, safe_address: str) -> SafeRelayer:
        return SafeRelayer(self.config, self.wallet, owner, safe_address, self.contracts)

    # State access

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def step(self) -> SessionStep:
        return self._state.step

    @property
    def owner(self) -> Optional[str]:
        return getattr(self._state, "owner", None)

    @property
    def session(self) -> Optional[TradingSession]:
        return self._state.session if isinstance(self._state, Complete) else None

    def require_complete(self) -> Complete:
        if not isinstance(self._state, Complete):
            raise SessionError(f"Trading session not ready (step: {self.step.value})")
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: SessionState) -> None:
        previous = self._state
        self._state = state
        if previous.step != state.step:
            logger.info(f"Trading session: {previous.step.value} -> {state.step.value}")
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"Session listener failed: {e}")

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise _Superseded()

    # Wallet events

    async def account_changed(self, address: Optional[str]) -> SessionState:
        """
        React to the wallet's active account.

        None means the wallet disconnected. A different address tears down the
        previous owner's session, including its stored record, before the
        machine enters connect for the new owner.
        """
        current = self.owner

        if address and current and address.lower() == current.lower():
            return self._state

        self._generation += 1
        if current:
            self.store.clear(current)
            logger.info(f"Cleared trading session for {current}")

        if not isinstance(self._state, Disconnected):
            self._set_state(Disconnected())

        if address:
            self._set_state(Connect(owner=address))

        return self._state

    async def sync_wallet(self) -> SessionState:
        """Read the wallet's account, then initialize if it is connected."""
        address = await self.wallet.get_address()
        await self.account_changed(address)
        if isinstance(self._state, Connect):
            return await self.initialize()
        return self._state

    async def logout(self) -> SessionState:
        """Destroy the session and its stored record. The wallet stays connected."""
        owner = self.owner
        self._generation += 1
        if owner:
            self.store.clear(owner)
            self._set_state(Connect(owner=owner))
        else:
            self._set_state(Disconnected())
        return self._state

    # Initialization

    async def retry(self) -> SessionState:
        """Re-enter initialize from error. Only ever user initiated."""
        if not isinstance(self._state, Error):
            return self._state
        return await self.initialize()

    async def switch_network(self) -> SessionState:
        """Ask the wallet to move to the required chain, then initialize again."""
        state = self._state
        if not isinstance(state, (Connect, Error)):
            return state

        generation = self._generation
        try:
            await self.wallet.switch_chain(self.config.chain_id)
        except UserRejectedError as e:
            if generation == self._generation:
                self._set_state(Error(state.owner, ErrorKind.USER_REJECTED, str(e)))
            return self._state

        if generation != self._generation:
            return self._state
        return await self.initialize()

    async def initialize(self) -> SessionState:
        """
        Establish a trading session for the connected owner.

        Returns the resulting state. A call made while an attempt for the same
        account is in flight returns the current state without starting a new
        one. After an account switch the call waits for the outdated attempt to
        unwind, then initializes the new account.
        """
        if self._lock.locked() and self._running_generation == self._generation:
            return self._state

        async with self._lock:
            state = self._state
            if not isinstance(state, (Connect, Error)):
                return state

            owner = state.owner
            generation = self._generation
            self._running_generation = generation
            self._set_state(Initialize(owner=owner))

            try:
                next_state = await self._run_initialize(owner, generation)
            except _Superseded:
                logger.info(f"Initialization for {owner} dropped after account change")
                return self._state
            except UserRejectedError as e:
                next_state = Error(owner, ErrorKind.USER_REJECTED, str(e) or "Signature rejected")
            except WrongNetworkError as e:
                next_state = Error(owner, ErrorKind.WRONG_NETWORK, str(e))
            except StaleCredentialsError as e:
                next_state = Error(owner, ErrorKind.STALE_CREDENTIALS, str(e))
            except RelayerError as e:
                next_state = Error(owner, ErrorKind.RELAYER, str(e))
            except SessionError as e:
                next_state = Error(owner, ErrorKind.WALLET, str(e))
            except SafeTraderError as e:
                next_state = Error(owner, ErrorKind.EXCHANGE, str(e))
            except Exception as e:
                logger.exception(f"Unexpected failure initializing session for {owner}")
                next_state = Error(owner, ErrorKind.EXCHANGE, str(e))

            if generation != self._generation:
                return self._state

            if isinstance(next_state, Error):
                logger.warning(f"Trading session error ({next_state.kind.value}): {next_state.message}")
            self._set_state(next_state)
            return self._state

    async def _run_initialize(self, owner: str, generation: int) -> Complete:
        address = await self.wallet.get_address()
        self._check_current(generation)
        if not address or address.lower() != owner.lower():
            raise SessionError(f"Wallet cannot sign for {owner}")

        chain_id = await self.wallet.get_chain_id()
        self._check_current(generation)
        if chain_id != self.config.chain_id:
            raise WrongNetworkError(chain_id, self.config.chain_id)

        key = self.wallet.signing_key()
        if not key:
            raise SessionError(f"Wallet for {owner} cannot sign exchange requests")

        safe_address = derive_safe_address(owner, self.contracts)
        credentials, stored = await self._acquire_credentials(owner, safe_address, key, generation)

        relayer = self._relayer_factory(owner, safe_address)

        is_deployed = bool(stored and stored.is_safe_deployed)
        if self.config.deploy_safe and not is_deployed:
            is_deployed = await self._ensure_deployed(relayer, safe_address, generation)

        has_approvals = bool(stored and stored.has_approvals)
        if self.config.set_approvals and not has_approvals:
            has_approvals = await self._ensure_approvals(relayer, safe_address, generation)

        session = TradingSession(
            owner_address=owner,
            derived_wallet_address=safe_address,
            api_credentials=credentials,
            step=SessionStep.COMPLETE,
            is_safe_deployed=is_deployed,
            has_approvals=has_approvals,
            created_at=stored.created_at if stored else time.time(),
        )

        self._check_current(generation)
        self.store.save(session)

        clob = self._clob.with_credentials(owner, safe_address, credentials, key=key)
        return Complete(session=session, clob=clob, relayer=relayer)

    async def _acquire_credentials(
        self, owner: str, safe_address: str, key: str, generation: int
    ) -> Tuple[ApiCredentials, Optional[TradingSession]]:
        """Restore and verify stored credentials, falling back to a fresh signature."""
        stored = self.store.load(owner)

        if stored is None:
            purged = self.store.clear_others(owner)
            if purged:
                logger.info(f"Purged stored sessions of other owners: {purged}")
        elif stored.derived_wallet_address.lower() != safe_address.lower():
            logger.warning(f"Stored trading wallet for {owner} does not match derived {safe_address}")
            self.store.clear(owner)
            stored = None

        if stored and stored.api_credentials and stored.api_credentials.is_complete:
            candidate = self._clob.with_credentials(owner, safe_address, stored.api_credentials, key=key)
            try:
                await candidate.verify_credentials()
                self._check_current(generation)
                logger.info(f"Restored trading session for {owner}")
                return stored.api_credentials, stored
            except SafeTraderError as e:
                self._check_current(generation)
                logger.warning(f"Stored credentials for {owner} failed verification: {e}")
                self.store.clear(owner)
                stored = None

        credentials = await self._clob.derive_api_credentials(key, owner)
        self._check_current(generation)

        await self._clob.with_credentials(owner, safe_address, credentials, key=key).verify_credentials()
        self._check_current(generation)
        return credentials, stored

    async def _ensure_deployed(self, relayer: SafeRelayer, safe_address: str, generation: int) -> bool:
        try:
            deployed = await relayer.is_deployed()
        except SafeTraderError as e:
            logger.debug(f"Relayer deployment check failed, reading chain: {e}")
            deployed = await self._reader.has_code(safe_address)
        self._check_current(generation)

        if not deployed:
            transaction = await relayer.deploy()
            self._check_current(generation)
            await transaction.wait()
            self._check_current(generation)
        return True

    async def _ensure_approvals(self, relayer: SafeRelayer, safe_address: str, generation: int) -> bool:
        status = await check_all_approvals(self._reader, safe_address)
        self._check_current(generation)
        if status.all_approved:
            return True

        transaction = await relayer.execute(
            approval_calls(self.contracts, status), "Set trading approvals"
        )
        self._check_current(generation)
        await transaction.wait()
        self._check_current(generation)
        return True
