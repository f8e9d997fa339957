"""
Monad Ambient CLI
=================
Command line front end for the swap engine on Monad testnet.

Usage:
    python -m monad_ambient wallet-add --name alice
    python -m monad_ambient wallet-import wallets_to_import.json
    python -m monad_ambient balance --wallet alice
    python -m monad_ambient swap --wallet alice --direction mon-to-token --token USDC --amount 0.1
    python -m monad_ambient roundtrip --wallet alice --token USDC --amount 0.2 --count 3
    python -m monad_ambient auto-swap --wallet alice --mode multi-token --swaps 10 --min 0.01 --max 0.05
    python -m monad_ambient multi-wallet --all --strategy auto_random --min 0.01 --max 0.05 --rounds 3

Ctrl+C once stops after the current operation; twice cancels immediately.
"""

import argparse
import asyncio
import getpass
import signal
import sys
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich import box
from rich.panel import Panel
from rich.table import Table

from .balances import check_balances, swap_info
from .chain import ChainClient
from .config import Config, ConfigManager, ScheduleConfig, StrategyKind
from .constants import BPS_DENOMINATOR
from .executor import SwapExecutor
from .logging_utils import MetricsCollector, add_json_file_handler
from .randomness import RandomnessService
from .results import ResultAggregator, SwapOutcome, render_summary
from .roundtrip import RoundtripCoordinator
from .scheduler import ScheduleCoordinator
from .series import SeriesReport, automated_roundtrips, random_multi_token_swaps
from .tokens import TokenDescriptor, TokenRepository
from .utils import (
    ConfigurationError, WalletError, console, format_address, format_duration, format_mon, format_tx_hash,
    logger, setup_logging, validate_address,
)
from .wallets import WalletHandle, WalletManager


def print_banner():
    banner = """
    Monad Ambient
    ═════════════
    Ambient Finance swaps on Monad Testnet
    """
    console.print(Panel(banner, style="bold blue", box=box.DOUBLE))


def get_password(prompt: str = "Enter wallet password: ") -> str:
    console.print(f"[yellow]{prompt}[/yellow]")
    password = getpass.getpass("> ")
    if len(password) < 8:
        console.print("[red]Password must be at least 8 characters[/red]")
        sys.exit(1)
    return password


def _decimal(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Not a number: {value}")
    if amount <= 0:
        raise argparse.ArgumentTypeError(f"Must be positive: {value}")
    return amount


def _slippage_bps(percent: float) -> int:
    bps = int(round(percent * 100))
    if not 0 <= bps < BPS_DENOMINATOR:
        console.print("[red]Slippage must be between 0 and 100 percent[/red]")
        sys.exit(1)
    return bps


class ConsoleReporter:
    """Renders engine events with a spinner and one line per result."""

    def __init__(self):
        self._status = None
        self.cancelled_results = ()

    def _spin(self, text: str):
        if self._status is None:
            self._status = console.status(text)
            self._status.start()
        else:
            self._status.update(text)

    def stop(self):
        if self._status is not None:
            self._status.stop()
            self._status = None

    def __call__(self, event: str, payload: Dict[str, Any]):
        if event == "round_started":
            self.stop()
            console.print(f"\n[bold yellow]=== Round {payload['round']}/{payload['rounds']} ===[/bold yellow]")
        elif event == "wallet_started":
            self._spin(f"Round {payload['round']}: {payload['wallet']} ({format_address(payload['address'])})")
        elif event == "series_step":
            self._spin(f"Swap {payload['index']}/{payload['total']} for {payload['wallet']}")
        elif event == "approval_started":
            self._spin(f"Approving {format_address(payload['token'])} for {payload['wallet']}...")
        elif event == "fallback_started":
            self._spin(f"Attempting fallback direct transfer ({payload['reason']})")
        elif event == "wallet_skipped":
            console.print(f"[yellow]Wallet {payload['wallet']} not found, skipped[/yellow]")
        elif event == "wallet_finished":
            self.stop()
            result = payload["result"]
            _print_outcome(result.outcome, f"{result.wallet_name} {result.action}")
        elif event == "run_cancelled":
            self.stop()
            self.cancelled_results = payload["results"]
        elif event in ("run_finished", "run_stopped", "series_finished"):
            self.stop()


def _print_outcome(outcome: SwapOutcome, label: str):
    if outcome.success:
        hashes = ", ".join(format_tx_hash(h) for h in outcome.tx_hashes)
        suffix = " [yellow](fallback)[/yellow]" if outcome.used_fallback else ""
        console.print(f"[green]✓ {label}: {hashes}{suffix}[/green]")
    else:
        console.print(f"[red]✗ {label} failed ({outcome.error_kind.value}): {outcome.error_message}[/red]")


@dataclass
class Engine:
    config: Config
    chain: ChainClient
    tokens: TokenRepository
    randomness: RandomnessService
    metrics: MetricsCollector
    executor: SwapExecutor


def load_config(args) -> Config:
    manager = ConfigManager(Path(args.config))
    config = manager.load_config()
    overrides = {
        'rpc_url': args.rpc,
        'wallet_file': args.wallet_file,
        'random_seed': args.seed,
        'log_level': args.log_level,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)

    setup_logging(config.log_level, config.log_file)
    if config.json_log_file:
        add_json_file_handler(config.json_log_file)
    return config


def build_engine(config: Config, reporter: Optional[Callable] = None) -> Engine:
    chain = ChainClient(config)
    tokens = TokenRepository(explorer_url=config.explorer_tokens_url, timeout=config.explorer_timeout_seconds)
    randomness = RandomnessService(config.random_seed)
    metrics = MetricsCollector()
    executor = SwapExecutor(chain, tokens, metrics=metrics, reporter=reporter)
    return Engine(config, chain, tokens, randomness, metrics, executor)


def open_wallets(config: Config, password: Optional[str] = None) -> WalletManager:
    return WalletManager(config.wallet_file, password if password is not None else get_password())


def require_wallet(manager: WalletManager, name: str) -> WalletHandle:
    try:
        wallet = manager.get(name)
    except WalletError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    if wallet is None:
        console.print(f"[red]Wallet {name} not found[/red]")
        sys.exit(1)
    return wallet


async def resolve_token(engine: Engine, value: str) -> TokenDescriptor:
    """Accept a known symbol or a contract address."""
    token = engine.tokens.by_symbol(value.upper())
    if token is None and validate_address(value):
        token = await engine.tokens.resolve(value, engine.chain)
    if token is None:
        raise ConfigurationError(f"Unknown token: {value}")
    return token


def run_task(make_coro: Callable[[], Any], on_first_interrupt: Optional[Callable[[], None]] = None):
    """
    Run the coroutine in its own task. The first SIGINT/SIGTERM calls
    `on_first_interrupt` (graceful stop) when given; the next one cancels.
    """
    async def main():
        task = asyncio.ensure_future(make_coro())
        loop = asyncio.get_running_loop()
        interrupts = {'count': 0}

        def handle_signal():
            interrupts['count'] += 1
            if on_first_interrupt is not None and interrupts['count'] == 1:
                console.print("\n[yellow]Stopping after the current operation (Ctrl+C again to abort)...[/yellow]")
                on_first_interrupt()
            else:
                task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                pass
        try:
            return await task
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except NotImplementedError:
                    pass

    return asyncio.run(main())


def _print_swap_info(info):
    table = Table(title="Wallet & Token Information", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Wallet", info.wallet)
    table.add_row("MON Balance", str(info.mon_balance))
    if info.token is not None:
        table.add_row(f"{info.token.symbol} Balance", str(info.token_balance))
        if info.tokens_per_mon is not None:
            table.add_row("Current Rate", f"1 MON ≈ {info.tokens_per_mon} {info.token.symbol}")
        else:
            table.add_row("Current Rate", "[dim]unavailable (insufficient liquidity?)[/dim]")
    table.add_row("Gas Price", f"{info.gas_price_gwei} gwei")
    table.add_row("Gas Limit", str(info.gas_limit))
    console.print(table)


def _print_series(report: SeriesReport, title: str):
    console.print(f"\n[bold blue]=== {title} Summary ===[/bold blue]")
    console.print(f"{report.successful} of {len(report.results)} operations completed successfully")
    console.print(f"MON balance change: {format_mon(report.mon_delta)}")
    if report.cancelled:
        console.print("[yellow]Series stopped early by user[/yellow]")


def _save_metrics(engine: Engine):
    if engine.metrics.metrics:
        console.print(engine.metrics.to_table())
        if engine.config.metrics_file:
            engine.metrics.save_to_file(engine.config.metrics_file)


# Commands

def wallet_add_command(args, config: Config):
    name = args.name or console.input("[yellow]Enter a name for this wallet:[/yellow] ")
    console.print("[yellow]Enter the private key:[/yellow]")
    key = getpass.getpass("> ")
    manager = open_wallets(config, args.password)
    try:
        address = manager.add(name, key)
    except WalletError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Wallet {name} added with address {address}[/green]")


def wallet_import_command(args, config: Config):
    manager = open_wallets(config, args.password)
    imported = manager.import_file(args.file)
    console.print(f"[green]✓ Imported {imported} wallets from {args.file}[/green]")


def wallet_list_command(args, config: Config):
    # Listing reads addresses only; nothing is decrypted
    manager = WalletManager(config.wallet_file, password="")
    wallets = manager.list()
    if not wallets:
        console.print("[yellow]No wallets found. Add one with wallet-add.[/yellow]")
        return
    table = Table(title="Wallets", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    for wallet in wallets:
        table.add_row(wallet["name"], wallet["address"])
    console.print(table)


def discover_tokens_command(args, config: Config):
    engine = build_engine(config)
    with console.status("Discovering tokens on Monad Testnet..."):
        added = engine.tokens.refresh()
    table = Table(title=f"Tokens ({added} discovered)", box=box.ROUNDED)
    table.add_column("Symbol", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Decimals", justify="right")
    for token in engine.tokens.all():
        table.add_row(token.symbol, token.address, str(token.decimals))
    console.print(table)


def balance_command(args, config: Config):
    engine = build_engine(config)
    wallet = require_wallet(open_wallets(config, args.password), args.wallet)
    if args.discover:
        engine.tokens.refresh()

    async def check():
        return await check_balances(engine.chain, engine.tokens, wallet)

    with console.status("Checking balances..."):
        balances = run_task(check)

    table = Table(title=f"Balances for {wallet.name} ({format_address(wallet.address)})", box=box.ROUNDED)
    table.add_column("Asset", style="cyan")
    table.add_column("Balance", justify="right")
    for symbol, amount in balances.items():
        table.add_row(symbol, str(amount))
    console.print(table)
    if len(balances) == 1:
        console.print("[dim]No token balances found[/dim]")


def swap_command(args, config: Config):
    reporter = ConsoleReporter()
    engine = build_engine(config, reporter)
    wallet = require_wallet(open_wallets(config, args.password), args.wallet)
    slippage = _slippage_bps(args.slippage)

    async def swap() -> SwapOutcome:
        token = await resolve_token(engine, args.token)
        _print_swap_info(await swap_info(engine.chain, engine.tokens, wallet, token.address))
        if args.direction == "mon-to-token":
            return await engine.executor.mon_to_token(wallet, token.address, args.amount, slippage)
        if args.direction == "token-to-mon":
            return await engine.executor.token_to_mon(wallet, token.address, args.amount, slippage)
        if not args.token_out:
            raise ConfigurationError("token-to-token requires --token-out")
        token_out = await resolve_token(engine, args.token_out)
        _print_swap_info(await swap_info(engine.chain, engine.tokens, wallet, token_out.address))
        return await engine.executor.token_to_token(wallet, token.address, token_out.address, args.amount, slippage)

    outcome = _run_guarded(swap, reporter)
    if outcome is not None:
        _print_outcome(outcome, f"Swap {args.direction}")
    _save_metrics(engine)


def add_liquidity_command(args, config: Config):
    reporter = ConsoleReporter()
    engine = build_engine(config, reporter)
    wallet = require_wallet(open_wallets(config, args.password), args.wallet)
    slippage = _slippage_bps(args.slippage)

    async def add() -> SwapOutcome:
        token = await resolve_token(engine, args.token)
        _print_swap_info(await swap_info(engine.chain, engine.tokens, wallet, token.address))
        return await engine.executor.add_liquidity(
            wallet, token.address, args.token_amount, args.mon_amount, slippage)

    outcome = _run_guarded(add, reporter)
    if outcome is not None:
        _print_outcome(outcome, "Add liquidity")
    _save_metrics(engine)


def roundtrip_command(args, config: Config):
    reporter = ConsoleReporter()
    engine = build_engine(config, reporter)
    wallet = require_wallet(open_wallets(config, args.password), args.wallet)
    roundtrips = RoundtripCoordinator(engine.executor, engine.randomness, engine.tokens, reporter)
    slippage = _slippage_bps(args.slippage)

    async def go():
        token = await resolve_token(engine, args.token)
        _print_swap_info(await swap_info(engine.chain, engine.tokens, wallet, token.address))
        if args.count > 1:
            return await roundtrips.auto_roundtrip(wallet, token.address, args.amount, args.count, slippage)
        return [await roundtrips.roundtrip(wallet, token.address, args.amount, slippage)]

    outcomes = _run_guarded(go, reporter)
    for index, outcome in enumerate(outcomes or [], start=1):
        _print_outcome(outcome, f"Roundtrip {index}")
    _save_metrics(engine)


def auto_swap_command(args, config: Config):
    reporter = ConsoleReporter()
    engine = build_engine(config, reporter)
    wallet = require_wallet(open_wallets(config, args.password), args.wallet)
    slippage = _slippage_bps(args.slippage)
    if args.min > args.max:
        console.print("[red]--min must not exceed --max[/red]")
        sys.exit(1)
    stop = asyncio.Event()

    async def go() -> SeriesReport:
        if args.mode == "roundtrip":
            if not args.token:
                raise ConfigurationError("roundtrip mode requires --token")
            token = await resolve_token(engine, args.token)
            return await automated_roundtrips(
                engine.executor, engine.randomness, wallet, token.address, args.swaps,
                args.min, args.max, slippage, engine.tokens, reporter, stop)
        if args.discover:
            engine.tokens.refresh()
        return await random_multi_token_swaps(
            engine.executor, engine.randomness, engine.tokens, wallet, args.swaps,
            args.min, args.max, slippage, reporter, stop)

    report = _run_guarded(go, reporter, stop.set)
    if report is not None:
        for result in report.results:
            _print_outcome(result.outcome, f"#{result.round} {result.action} {result.token_symbol or ''}".strip())
        _print_series(report, "Automated Swap Series" if args.mode == "roundtrip" else "Random Multi-Token Swap Series")
    _save_metrics(engine)


def multi_wallet_command(args, config: Config):
    reporter = ConsoleReporter()
    engine = build_engine(config, reporter)
    manager = open_wallets(config, args.password)

    names = manager.names() if args.all else [n.strip() for n in (args.wallets or "").split(",") if n.strip()]
    schedule = ConfigManager(Path(args.config)).load_schedule() or ScheduleConfig()
    if args.strategy:
        schedule.strategy = StrategyKind(args.strategy)
    if args.token:
        token = engine.tokens.by_symbol(args.token.upper())
        schedule.token_address = token.address if token else args.token
    if args.amount is not None:
        schedule.amount = args.amount
        schedule.dynamic_amount = False
    if args.min is not None:
        schedule.min_amount = args.min
    if args.max is not None:
        schedule.max_amount = args.max
    if args.rounds is not None:
        schedule.rounds_per_wallet = args.rounds
    if args.slippage is not None:
        schedule.slippage_bps = _slippage_bps(args.slippage)
    if args.discover:
        engine.tokens.refresh()

    coordinator = ScheduleCoordinator(engine.executor, manager, engine.tokens, engine.randomness, reporter)
    console.print(f"\n[bold blue]=== Starting Multi-Wallet Operation with {len(names)} wallets ===[/bold blue]")
    console.print(f"Each wallet will perform {schedule.rounds_per_wallet} swaps in a randomized order")

    started = time.time()
    report = _run_guarded(lambda: coordinator.run(names, schedule), reporter, coordinator.request_stop)
    console.print()
    console.print(f"Elapsed: {format_duration(time.time() - started)}")
    if report is not None:
        if report.cancelled:
            console.print("[yellow]Run stopped early by user[/yellow]")
        console.print(render_summary(report.summary, report.net_balance_change))
    elif reporter.cancelled_results:
        aggregator = ResultAggregator(names)
        for result in reporter.cancelled_results:
            aggregator.add(result)
        console.print("[yellow]Run cancelled; partial summary:[/yellow]")
        console.print(render_summary(aggregator.summary()))
    _save_metrics(engine)


def _run_guarded(make_coro, reporter: ConsoleReporter, on_first_interrupt=None):
    """Run a command coroutine and turn expected failures into messages."""
    try:
        return run_task(make_coro, on_first_interrupt)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)
    except (asyncio.CancelledError, KeyboardInterrupt):
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return None
    finally:
        reporter.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="monad_ambient",
        description="CLI for swapping tokens on Monad Testnet using Ambient Finance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1] if __doc__ else None,
    )

    # Global options
    parser.add_argument('--config', default='./monad_ambient.yaml', help='Path to YAML config')
    parser.add_argument('--rpc', help='Monad RPC URL override')
    parser.add_argument('--wallet-file', help='Path to encrypted wallet storage')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible runs')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Log level')
    parser.add_argument('--password', help='Wallet password (or prompt)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    add_parser = subparsers.add_parser('wallet-add', help='Add a new wallet by private key')
    add_parser.add_argument('--name', help='Wallet name (or prompt)')

    import_parser = subparsers.add_parser('wallet-import', help='Import wallets from a JSON file')
    import_parser.add_argument('file', help='JSON file: {"name": {"privateKey": "0x..."}}')

    subparsers.add_parser('wallet-list', help='List all wallets')
    subparsers.add_parser('discover-tokens', help='Discover tokens on Monad Testnet')

    balance_parser = subparsers.add_parser('balance', help='Check wallet balances')
    balance_parser.add_argument('--wallet', required=True, help='Wallet name')
    balance_parser.add_argument('--discover', action='store_true', help='Refresh the token list first')

    swap_parser = subparsers.add_parser('swap', help='Swap tokens')
    swap_parser.add_argument('--wallet', required=True, help='Wallet name')
    swap_parser.add_argument('--direction', required=True,
                             choices=['mon-to-token', 'token-to-mon', 'token-to-token'])
    swap_parser.add_argument('--token', required=True, help='Token symbol or address (input token for token-to-*)')
    swap_parser.add_argument('--token-out', help='Output token for token-to-token')
    swap_parser.add_argument('--amount', type=_decimal, required=True, help='Amount of the source asset')
    swap_parser.add_argument('--slippage', type=float, default=5.0, help='Slippage tolerance in percent')

    liquidity_parser = subparsers.add_parser('add-liquidity', help='Add liquidity to a token/MON pool')
    liquidity_parser.add_argument('--wallet', required=True, help='Wallet name')
    liquidity_parser.add_argument('--token', required=True, help='Token symbol or address')
    liquidity_parser.add_argument('--token-amount', type=_decimal, required=True)
    liquidity_parser.add_argument('--mon-amount', type=_decimal, required=True)
    liquidity_parser.add_argument('--slippage', type=float, default=5.0, help='Slippage tolerance in percent')

    roundtrip_parser = subparsers.add_parser('roundtrip', help='Swap MON -> token -> MON')
    roundtrip_parser.add_argument('--wallet', required=True, help='Wallet name')
    roundtrip_parser.add_argument('--token', required=True, help='Token symbol or address')
    roundtrip_parser.add_argument('--amount', type=_decimal, required=True, help='MON amount')
    roundtrip_parser.add_argument('--count', type=int, default=1, help='Number of roundtrips (auto mode when > 1)')
    roundtrip_parser.add_argument('--slippage', type=float, default=5.0, help='Slippage tolerance in percent')

    auto_parser = subparsers.add_parser('auto-swap', help='Automated random swap series for one wallet')
    auto_parser.add_argument('--wallet', required=True, help='Wallet name')
    auto_parser.add_argument('--mode', choices=['roundtrip', 'multi-token'], default='roundtrip')
    auto_parser.add_argument('--token', help='Token symbol or address (roundtrip mode)')
    auto_parser.add_argument('--swaps', type=int, default=10, help='Maximum number of swaps')
    auto_parser.add_argument('--min', type=_decimal, required=True, help='Minimum MON per swap')
    auto_parser.add_argument('--max', type=_decimal, required=True, help='Maximum MON per swap')
    auto_parser.add_argument('--slippage', type=float, default=5.0, help='Slippage tolerance in percent')
    auto_parser.add_argument('--discover', action='store_true', help='Refresh the token list first')

    multi_parser = subparsers.add_parser('multi-wallet', help='Run a strategy across several wallets')
    multi_parser.add_argument('--wallets', help='Comma-separated wallet names')
    multi_parser.add_argument('--all', action='store_true', help='Use every stored wallet')
    multi_parser.add_argument('--strategy', choices=[s.value for s in StrategyKind])
    multi_parser.add_argument('--token', help='Token symbol or address')
    multi_parser.add_argument('--amount', type=_decimal, help='Fixed amount (disables dynamic sizing)')
    multi_parser.add_argument('--min', type=_decimal, help='Minimum amount for dynamic sizing')
    multi_parser.add_argument('--max', type=_decimal, help='Maximum amount for dynamic sizing')
    multi_parser.add_argument('--rounds', type=int, help='Swaps per wallet')
    multi_parser.add_argument('--slippage', type=float, help='Slippage tolerance in percent')
    multi_parser.add_argument('--discover', action='store_true', help='Refresh the token list first')

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    print_banner()
    config = load_config(args)
    commands = {
        'wallet-add': wallet_add_command,
        'wallet-import': wallet_import_command,
        'wallet-list': wallet_list_command,
        'discover-tokens': discover_tokens_command,
        'balance': balance_command,
        'swap': swap_command,
        'add-liquidity': add_liquidity_command,
        'roundtrip': roundtrip_command,
        'auto-swap': auto_swap_command,
        'multi-wallet': multi_wallet_command,
    }
    try:
        commands[args.command](args, config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)


if __name__ == '__main__':
    main()
