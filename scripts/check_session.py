"""Check the trading wallet, balances and approvals for the configured key.

Usage:
    python scripts/check_session.py
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from safe_trader import ChainReader, LocalAccountWallet, SessionStore, derive_safe_address, load_config, load_private_key
from safe_trader.chain import check_all_approvals, get_contract_config
from safe_trader.chain.contracts import COLLATERAL_UNIT

console = Console()


def _usdc(raw: int) -> str:
    return f"${Decimal(raw) / COLLATERAL_UNIT:,.2f}"


async def main() -> int:
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    try:
        private_key = load_private_key()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    config = load_config()
    contracts = get_contract_config(config.chain_id)
    wallet = LocalAccountWallet(private_key, chain_id=config.chain_id)
    owner = wallet.address
    safe_address = derive_safe_address(owner, contracts)
    reader = ChainReader(config.rpc_url, contracts)

    console.print(f"Owner:          [cyan]{owner}[/cyan]")
    console.print(f"Trading wallet: [cyan]{safe_address}[/cyan]")

    stored = SessionStore(config.session_dir, config.session_max_age_days).load(owner)
    if stored:
        console.print(
            f"Stored session: deployed={stored.is_safe_deployed} approvals={stored.has_approvals}"
        )
    else:
        console.print("Stored session: [yellow]none[/yellow]")
    console.print()

    deployed = await reader.has_code(safe_address)
    owner_balance = await reader.collateral_balance(owner)
    safe_balance = await reader.collateral_balance(safe_address)

    balances = Table(title="Balances")
    balances.add_column("Wallet")
    balances.add_column("USDC.e", justify="right")
    balances.add_row("Owner", _usdc(owner_balance))
    balances.add_row("Trading wallet", _usdc(safe_balance))
    console.print(balances)

    if not deployed:
        console.print("[yellow]Trading wallet is not deployed yet. Initialize a session to deploy it.[/yellow]")
        return 0

    status = await check_all_approvals(reader, safe_address)
    approvals = Table(title="Approvals")
    approvals.add_column("Kind")
    approvals.add_column("Contract")
    approvals.add_column("Approved")
    for spender, ok in status.collateral.items():
        approvals.add_row("USDC allowance", spender, "[green]yes[/green]" if ok else "[red]no[/red]")
    for operator, ok in status.outcome_tokens.items():
        approvals.add_row("Outcome tokens", operator, "[green]yes[/green]" if ok else "[red]no[/red]")
    console.print(approvals)

    if not status.all_approved:
        console.print("[yellow]Missing approvals. Initialize a session to set them.[/yellow]")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
