"""Tests for the trading session state machine"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from safe_trader.base.config import TradingConfig
from safe_trader.base.errors import (
    ExchangeError,
    RelayerError,
    SessionError,
    StaleCredentialsError,
    UserRejectedError,
)
from safe_trader.chain.contracts import POLYGON_CONTRACTS
from safe_trader.chain.safe import derive_safe_address
from safe_trader.models.session import (
    ApiCredentials,
    Complete,
    Connect,
    Disconnected,
    Error,
    ErrorKind,
    Initialize,
    SessionStep,
    TradingSession,
)
from safe_trader.session.machine import TradingSessionMachine
from safe_trader.session.store import SessionStore

OWNER = "0x1111111111111111111111111111111111111111"
OTHER = "0x3333333333333333333333333333333333333333"
CREDS = ApiCredentials("fresh-key", "c2VjcmV0LWJ5dGVz", "fresh-pass")
STORED_CREDS = ApiCredentials("stored-key", "c3RvcmVk", "stored-pass")
KEY = "0x" + "4c" * 32


def make_wallet(address=OWNER, chain_id=137):
    wallet = Mock()
    wallet.get_address = AsyncMock(return_value=address)
    wallet.get_chain_id = AsyncMock(return_value=chain_id)
    wallet.switch_chain = AsyncMock()
    wallet.signing_key = Mock(return_value=KEY)
    return wallet


def make_clob(derive=None, verify=None):
    clob = Mock()
    clob.derive_api_credentials = derive or AsyncMock(return_value=CREDS)
    authed = Mock()
    authed.verify_credentials = verify or AsyncMock(return_value=None)
    clob.with_credentials = Mock(return_value=authed)
    return clob, authed


def make_machine(tmp_path, wallet=None, clob=None, config=None, relayer=None, reader=None):
    config = config or TradingConfig(deploy_safe=False, set_approvals=False, session_dir=str(tmp_path))
    store = SessionStore(str(tmp_path))
    if clob is None:
        clob, _ = make_clob()
    return TradingSessionMachine(
        wallet or make_wallet(),
        store,
        config,
        clob=clob,
        relayer_factory=lambda owner, safe: relayer or Mock(),
        chain_reader=reader or Mock(),
    )


def stored_session(owner=OWNER, derived=None, credentials=STORED_CREDS):
    return TradingSession(
        owner_address=owner,
        derived_wallet_address=derived or derive_safe_address(owner, POLYGON_CONTRACTS),
        api_credentials=credentials,
        step=SessionStep.COMPLETE,
        is_safe_deployed=True,
        has_approvals=True,
    )


class TestConnect:
    @pytest.mark.asyncio
    async def test_starts_disconnected(self, tmp_path):
        machine = make_machine(tmp_path)

        assert isinstance(machine.state, Disconnected)
        assert machine.owner is None
        with pytest.raises(SessionError):
            machine.require_complete()

    @pytest.mark.asyncio
    async def test_account_connects(self, tmp_path):
        machine = make_machine(tmp_path)

        state = await machine.account_changed(OWNER)

        assert state == Connect(owner=OWNER)

    @pytest.mark.asyncio
    async def test_disconnect(self, tmp_path):
        machine = make_machine(tmp_path)
        await machine.account_changed(OWNER)

        state = await machine.account_changed(None)

        assert isinstance(state, Disconnected)


class TestInitialize:
    @pytest.mark.asyncio
    async def test_fresh_session(self, tmp_path):
        # #given
        clob, authed = make_clob()
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)

        # #when
        state = await machine.initialize()

        # #then
        assert isinstance(state, Complete)
        assert state.session.owner_address == OWNER
        assert state.session.derived_wallet_address == derive_safe_address(OWNER)
        assert state.session.api_credentials == CREDS
        assert state.clob is authed
        clob.derive_api_credentials.assert_awaited_once_with(KEY, OWNER)
        authed.verify_credentials.assert_awaited_once()
        assert machine.store.load(OWNER).api_credentials == CREDS

    @pytest.mark.asyncio
    async def test_sync_wallet_runs_initialize(self, tmp_path):
        machine = make_machine(tmp_path)

        state = await machine.sync_wallet()

        assert isinstance(state, Complete)

    @pytest.mark.asyncio
    async def test_restores_stored_credentials(self, tmp_path):
        # #given
        clob, authed = make_clob()
        machine = make_machine(tmp_path, clob=clob)
        machine.store.save(stored_session())
        await machine.account_changed(OWNER)

        # #when
        state = await machine.initialize()

        # #then
        assert isinstance(state, Complete)
        assert state.session.api_credentials == STORED_CREDS
        clob.derive_api_credentials.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_stored_credentials_are_replaced(self, tmp_path):
        clob, authed = make_clob(
            verify=AsyncMock(side_effect=[StaleCredentialsError("rejected"), None])
        )
        machine = make_machine(tmp_path, clob=clob)
        machine.store.save(stored_session())
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert isinstance(state, Complete)
        assert state.session.api_credentials == CREDS
        clob.derive_api_credentials.assert_awaited_once()
        assert machine.store.load(OWNER).api_credentials == CREDS

    @pytest.mark.asyncio
    async def test_stored_record_with_wrong_wallet_is_discarded(self, tmp_path):
        clob, authed = make_clob()
        machine = make_machine(tmp_path, clob=clob)
        machine.store.save(stored_session(derived="0x4444444444444444444444444444444444444444"))
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert state.session.derived_wallet_address == derive_safe_address(OWNER)
        clob.derive_api_credentials.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_owners_are_purged(self, tmp_path):
        clob, _ = make_clob()
        machine = make_machine(tmp_path, clob=clob)
        machine.store.save(stored_session(owner=OTHER))
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert state.session.api_credentials == CREDS
        clob.derive_api_credentials.assert_awaited_once()
        assert machine.store.owners() == [OWNER.lower()]

    @pytest.mark.asyncio
    async def test_initialize_needs_connect(self, tmp_path):
        machine = make_machine(tmp_path)

        state = await machine.initialize()

        assert isinstance(state, Disconnected)

    @pytest.mark.asyncio
    async def test_transitions_are_published(self, tmp_path):
        machine = make_machine(tmp_path)
        steps = []
        machine.subscribe(lambda state: steps.append(state.step))

        await machine.account_changed(OWNER)
        await machine.initialize()

        assert steps == [SessionStep.CONNECT, SessionStep.INITIALIZE, SessionStep.COMPLETE]


class TestErrors:
    @pytest.mark.asyncio
    async def test_user_rejection_waits_for_retry(self, tmp_path):
        # #given
        clob, _ = make_clob(derive=AsyncMock(side_effect=[UserRejectedError("User denied"), CREDS]))
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)

        # #when
        state = await machine.initialize()

        # #then
        assert isinstance(state, Error)
        assert state.kind == ErrorKind.USER_REJECTED
        assert clob.derive_api_credentials.await_count == 1

        state = await machine.retry()
        assert isinstance(state, Complete)
        assert clob.derive_api_credentials.await_count == 2

    @pytest.mark.asyncio
    async def test_wrong_network_then_switch(self, tmp_path):
        wallet = make_wallet()
        wallet.get_chain_id = AsyncMock(side_effect=[1, 137])
        machine = make_machine(tmp_path, wallet=wallet)
        await machine.account_changed(OWNER)

        state = await machine.initialize()
        assert isinstance(state, Error)
        assert state.kind == ErrorKind.WRONG_NETWORK

        state = await machine.switch_network()
        wallet.switch_chain.assert_awaited_once_with(137)
        assert isinstance(state, Complete)

    @pytest.mark.asyncio
    async def test_rejected_network_switch(self, tmp_path):
        wallet = make_wallet(chain_id=1)
        wallet.switch_chain = AsyncMock(side_effect=UserRejectedError("User rejected switch"))
        machine = make_machine(tmp_path, wallet=wallet)
        await machine.account_changed(OWNER)
        await machine.initialize()

        state = await machine.switch_network()

        assert isinstance(state, Error)
        assert state.kind == ErrorKind.USER_REJECTED

    @pytest.mark.asyncio
    async def test_wallet_for_another_account(self, tmp_path):
        machine = make_machine(tmp_path, wallet=make_wallet(address=OTHER))
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert isinstance(state, Error)
        assert state.kind == ErrorKind.WALLET

    @pytest.mark.asyncio
    async def test_wallet_without_signing_key(self, tmp_path):
        wallet = make_wallet()
        wallet.signing_key = Mock(return_value=None)
        clob, _ = make_clob()
        machine = make_machine(tmp_path, wallet=wallet, clob=clob)
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert state.kind == ErrorKind.WALLET
        clob.derive_api_credentials.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exchange_failure(self, tmp_path):
        clob, _ = make_clob(derive=AsyncMock(side_effect=ExchangeError("500")))
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert state == Error(OWNER, ErrorKind.EXCHANGE, "500")
        assert machine.store.load(OWNER) is None

    @pytest.mark.asyncio
    async def test_retry_outside_error_does_nothing(self, tmp_path):
        clob, _ = make_clob()
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)

        state = await machine.retry()

        assert state == Connect(owner=OWNER)
        clob.derive_api_credentials.assert_not_awaited()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_initialize_does_not_start_another_attempt(self, tmp_path):
        # #given
        gate = asyncio.Event()

        async def slow_derive(*args, **kwargs):
            await gate.wait()
            return CREDS

        clob, _ = make_clob(derive=AsyncMock(side_effect=slow_derive))
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)
        first = asyncio.create_task(machine.initialize())
        while not clob.derive_api_credentials.called:
            await asyncio.sleep(0)

        # #when
        second = await machine.initialize()
        gate.set()
        final = await first

        # #then
        assert second == Initialize(owner=OWNER)
        assert isinstance(final, Complete)
        assert clob.derive_api_credentials.await_count == 1

    @pytest.mark.asyncio
    async def test_account_change_drops_in_flight_attempt(self, tmp_path):
        # #given
        machine = None

        async def derive_then_switch(*args, **kwargs):
            await machine.account_changed(OTHER)
            return CREDS

        clob, _ = make_clob(derive=AsyncMock(side_effect=derive_then_switch))
        machine = make_machine(tmp_path, clob=clob)
        await machine.account_changed(OWNER)

        # #when
        state = await machine.initialize()

        # #then
        assert state == Connect(owner=OTHER)
        assert machine.store.load(OWNER) is None
        assert machine.store.owners() == []

    @pytest.mark.asyncio
    async def test_account_switch_mid_initialize_initializes_new_account(self, tmp_path):
        # #given
        gate = asyncio.Event()
        wallet = make_wallet()

        async def slow_derive(key, owner, *args, **kwargs):
            if owner == OWNER:
                await gate.wait()
            return CREDS

        clob, _ = make_clob(derive=AsyncMock(side_effect=slow_derive))
        machine = make_machine(tmp_path, wallet=wallet, clob=clob)
        first = asyncio.create_task(machine.sync_wallet())
        while not clob.derive_api_credentials.called:
            await asyncio.sleep(0)

        # #when
        wallet.get_address = AsyncMock(return_value=OTHER)
        second = asyncio.create_task(machine.sync_wallet())
        while machine.owner != OTHER:
            await asyncio.sleep(0)
        gate.set()
        await first
        state = await second

        # #then
        assert isinstance(state, Complete)
        assert state.session.owner_address == OTHER
        assert machine.store.owners() == [OTHER.lower()]
        assert clob.derive_api_credentials.await_count == 2

    @pytest.mark.asyncio
    async def test_account_change_clears_previous_session(self, tmp_path):
        machine = make_machine(tmp_path)
        await machine.account_changed(OWNER)
        await machine.initialize()

        state = await machine.account_changed(OTHER)

        assert state == Connect(owner=OTHER)
        assert machine.store.load(OWNER) is None

    @pytest.mark.asyncio
    async def test_same_account_keeps_session(self, tmp_path):
        machine = make_machine(tmp_path)
        await machine.account_changed(OWNER)
        complete = await machine.initialize()

        state = await machine.account_changed(OWNER.upper().replace("0X", "0x"))

        assert state is complete


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_store(self, tmp_path):
        machine = make_machine(tmp_path)
        await machine.account_changed(OWNER)
        await machine.initialize()

        state = await machine.logout()

        assert state == Connect(owner=OWNER)
        assert machine.store.load(OWNER) is None
        assert machine.session is None


class TestDeploymentAndApprovals:
    @pytest.mark.asyncio
    async def test_deploys_safe_and_sets_missing_approvals(self, tmp_path):
        # #given
        transaction = Mock()
        transaction.wait = AsyncMock(return_value={"state": "STATE_MINED"})
        relayer = Mock()
        relayer.is_deployed = AsyncMock(return_value=False)
        relayer.deploy = AsyncMock(return_value=transaction)
        relayer.execute = AsyncMock(return_value=transaction)

        reader = Mock()
        reader.contracts = POLYGON_CONTRACTS
        reader.collateral_allowance = AsyncMock(return_value=0)
        reader.is_approved_for_all = AsyncMock(return_value=False)

        config = TradingConfig(session_dir=str(tmp_path))
        machine = make_machine(tmp_path, config=config, relayer=relayer, reader=reader)
        await machine.account_changed(OWNER)

        # #when
        state = await machine.initialize()

        # #then
        assert isinstance(state, Complete)
        assert state.session.is_safe_deployed
        assert state.session.has_approvals
        relayer.deploy.assert_awaited_once()
        calls = relayer.execute.call_args.args[0]
        assert len(calls) == 7

    @pytest.mark.asyncio
    async def test_stored_flags_skip_relayer(self, tmp_path):
        relayer = Mock()
        relayer.is_deployed = AsyncMock()
        relayer.execute = AsyncMock()
        config = TradingConfig(session_dir=str(tmp_path))
        machine = make_machine(tmp_path, config=config, relayer=relayer)
        machine.store.save(stored_session())
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert isinstance(state, Complete)
        relayer.is_deployed.assert_not_awaited()
        relayer.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_relayer_failure(self, tmp_path):
        transaction = Mock()
        transaction.wait = AsyncMock(side_effect=RelayerError("STATE_FAILED"))
        relayer = Mock()
        relayer.is_deployed = AsyncMock(return_value=False)
        relayer.deploy = AsyncMock(return_value=transaction)
        config = TradingConfig(session_dir=str(tmp_path), set_approvals=False)
        machine = make_machine(tmp_path, config=config, relayer=relayer)
        await machine.account_changed(OWNER)

        state = await machine.initialize()

        assert isinstance(state, Error)
        assert state.kind == ErrorKind.RELAYER
