"""
Sealbid CLI - Command Line Interface for the sealed-bid auction coordinator

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path
from typing import Optional

from sealbid.utils.logger import setup_logging

PBKDF2_ITERATIONS = 100000


def _wallet_fernet(wallet_name: str, password: str):
    """Fernet keyed by PBKDF2(password, wallet name)."""
    import base64
    import hashlib
    from cryptography.fernet import Fernet

    salt = wallet_name.encode()  # Wallet name as salt (deterministic per wallet)
    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    )
    return Fernet(key)


def decrypt_wallet_key(wallet_data: dict, wallet_name: str, password: str) -> Optional[bytes]:
    """
    Decrypt a wallet's private key.

    Args:
        wallet_data: Loaded wallet JSON data
        wallet_name: Wallet name (used as salt)
        password: User's password

    Returns:
        Decrypted private key bytes, or None on failure
    """
    from cryptography.fernet import InvalidToken

    if "encrypted_private_key" not in wallet_data:
        return None

    try:
        return _wallet_fernet(wallet_name, password).decrypt(wallet_data["encrypted_private_key"].encode())
    except InvalidToken:
        return None


def _parse_address(value: str, name: str) -> bytes:
    from sealbid.crypto import hex_to_bytes, is_valid_address

    if not is_valid_address(value):
        raise click.BadParameter(f"{name} must be a 0x-prefixed 20-byte hex address")
    return hex_to_bytes(value)


def _deriver(ctx):
    from sealbid.core.config import load_config
    from sealbid.crypto.derivation import AddressDeriver

    config = load_config(ctx.obj.get("env_file"))
    return AddressDeriver(config.program_id_bytes, config.encryption_program_id_bytes)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.sealbid", help="Data directory")
@click.option("--env-file", default=None, help="Optional .env file with SEALBID_* settings")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """Sealbid - sealed-bid auction settlement coordinator"""
    import logging
    from pydantic import ValidationError
    from sealbid.core.config import load_config

    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)
    ctx.obj["env_file"] = env_file

    try:
        config = load_config(env_file)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration:\n{exc}") from exc

    # --debug wins over SEALBID_LOG_LEVEL
    level = logging.DEBUG if debug else config.log_level
    log_dir = config.log_dir.expanduser() if config.log_dir else ctx.obj["data_dir"] / "logs"
    setup_logging(level=level, log_dir=str(log_dir))


# =============================================================================
# Wallet Commands
# =============================================================================

@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def wallet_create(ctx, name, password):
    """Create a new encrypted wallet"""
    from sealbid.crypto import generate_keypair, bytes_to_hex

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if wallet_path.exists():
        raise click.ClickException(f"Wallet already exists: {wallet_path}")

    kp = generate_keypair()
    encrypted_private_key = _wallet_fernet(name, password).encrypt(kp.private_key).decode("utf-8")

    wallet_path.parent.mkdir(parents=True, exist_ok=True)
    wallet_data = {
        "name": name,
        "address": bytes_to_hex(kp.address),
        "encrypted_private_key": encrypted_private_key,
        "public_key": bytes_to_hex(kp.public_key),
    }
    wallet_path.write_text(json.dumps(wallet_data, indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {bytes_to_hex(kp.address)}")
    click.echo(f"  Saved to: {wallet_path}")
    click.echo("  ⚠️  Remember your password - it cannot be recovered!")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    wallet_files = sorted(wallet_dir.glob("*.json")) if wallet_dir.exists() else []
    if not wallet_files:
        click.echo("No wallets found.")
        return

    for wallet_file in wallet_files:
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


@wallet.command("show")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, help="Wallet password")
@click.pass_context
def wallet_show(ctx, name, password):
    """Unlock a wallet and show its identity"""
    from sealbid.core.identity import SigningIdentity
    from sealbid.crypto import bytes_to_hex

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if not wallet_path.exists():
        raise click.ClickException(f"No wallet named {name}")

    private_key = decrypt_wallet_key(json.loads(wallet_path.read_text()), name, password)
    if private_key is None:
        raise click.ClickException("Wrong password or corrupted wallet file")

    identity = SigningIdentity.from_private_key(private_key, label=name)
    click.echo(f"Wallet: {name}")
    click.echo(f"  Address: {bytes_to_hex(identity.address)}")
    click.echo(f"  Public key: {bytes_to_hex(identity.public_key)}")


# =============================================================================
# Derivation Commands
# =============================================================================

@cli.group()
def derive():
    """Print derived record addresses"""
    pass


@derive.command("auction")
@click.argument("seller")
@click.argument("auction_id", type=int)
@click.pass_context
def derive_auction(ctx, seller, auction_id):
    """Address of SELLER's auction AUCTION_ID"""
    from sealbid.crypto import bytes_to_hex

    try:
        address = _deriver(ctx).auction_address(_parse_address(seller, "seller"), auction_id)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    click.echo(bytes_to_hex(address))


@derive.command("bid")
@click.argument("auction")
@click.argument("bidder")
@click.pass_context
def derive_bid(ctx, auction, bidder):
    """Address of BIDDER's bid on AUCTION"""
    from sealbid.crypto import bytes_to_hex

    address = _deriver(ctx).bid_address(_parse_address(auction, "auction"), _parse_address(bidder, "bidder"))
    click.echo(bytes_to_hex(address))


@derive.command("allowance")
@click.argument("handle", type=int)
@click.argument("allowed")
@click.pass_context
def derive_allowance(ctx, handle, allowed):
    """Address of the decrypt permission for HANDLE granted to ALLOWED"""
    from sealbid.crypto import bytes_to_hex

    try:
        address = _deriver(ctx).allowance_address(handle, _parse_address(allowed, "allowed"))
    except (TypeError, ValueError) as exc:
        raise click.BadParameter(str(exc)) from exc
    click.echo(bytes_to_hex(address))


# =============================================================================
# Codec Commands
# =============================================================================

@cli.group()
def codec():
    """Fixed-width 128-bit encoding used at the settlement boundary"""
    pass


@codec.command("encode")
@click.argument("value", type=int)
def codec_encode(value):
    """Encode VALUE as 16 little-endian bytes (low word first)"""
    from sealbid.crypto import bytes_to_hex
    from sealbid.crypto.codec import encode_u128

    try:
        click.echo(bytes_to_hex(encode_u128(value)))
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


@codec.command("decode")
@click.argument("hex_value")
def codec_decode(hex_value):
    """Decode 16 little-endian bytes back into an integer"""
    from sealbid.crypto import hex_to_bytes
    from sealbid.crypto.codec import decode_u128

    try:
        click.echo(str(decode_u128(hex_to_bytes(hex_value))))
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


# =============================================================================
# Config Command
# =============================================================================

@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Print effective configuration"""
    from pydantic import ValidationError
    from sealbid.core.config import load_config

    try:
        config = load_config(ctx.obj.get("env_file"))
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration:\n{exc}") from exc
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


# =============================================================================
# Demo Command
# =============================================================================


class _DemoClock:
    """Manually advanced clock so the demo need not wait out the auction."""

    def __init__(self, start: int):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@cli.command("demo")
@click.option("--reserve", default=1_000_000_000, help="Reserve price (minor units)")
@click.option("--duration", default=3600, help="Bidding window (seconds)")
@click.option("--bid", "bids", multiple=True, type=int, help="Bid amount; repeat per bidder")
def demo(reserve, duration, bids):
    """Run the full auction lifecycle against in-memory collaborators"""
    import asyncio
    import time
    from sealbid.core.auction.coordinator import AuctionCoordinator
    from sealbid.core.encryption.local import LocalEncryptionService
    from sealbid.core.errors import SealbidError
    from sealbid.core.identity import SigningIdentity
    from sealbid.core.ledger.memory import InMemoryLedger
    from sealbid.crypto import bytes_to_hex
    from sealbid.crypto.codec import format_amount, format_handle

    amounts = list(bids) or [reserve + 500_000_000, reserve + 250_000_000]

    async def run_demo():
        clock = _DemoClock(int(time.time()))
        service = LocalEncryptionService()
        ledger = InMemoryLedger(service, clock=clock)
        coordinator = AuctionCoordinator(ledger, service)

        seller = SigningIdentity.generate("seller")
        bidders = [SigningIdentity.generate(f"bidder-{i + 1}") for i in range(len(amounts))]
        for bidder, amount in zip(bidders, amounts):
            ledger.fund(bidder.address, amount)

        click.echo("🏛️  Creating auction...")
        auction = await coordinator.create_auction("Demo lot", "A sealed-bid demo auction", reserve, duration, seller)
        click.echo(f"  ✓ Auction {bytes_to_hex(auction.address)}")
        click.echo(f"  ✓ Reserve: {format_amount(reserve)}, ends in {duration}s")
        click.echo()

        click.echo("🔒 Placing encrypted bids...")
        for bidder, amount in zip(bidders, amounts):
            bid = await coordinator.place_bid(auction.address, amount, bidder)
            click.echo(f"  ✓ {bidder.label}: handle {format_handle(bid.encrypted_amount)}")
        click.echo()

        clock.advance(duration)
        auction = await coordinator.close_bidding(auction.address, seller)
        click.echo(f"⏱️  Bidding closed: {auction.state.value} with {auction.bid_count} bids")
        if auction.bid_count == 0:
            click.echo("✅ Demo complete (no bids, auction cancelled)")
            return

        report = await coordinator.process_bids(auction.address, seller)
        click.echo(f"⚖️  Processed {len(report.processed)} bids ({report.bids_processed}/{report.bid_count})")

        result = await coordinator.finalize_winner(auction.address, seller)
        winner = next(b for b in bidders if b.address == result.leader)
        click.echo(f"🏆 Winner determined: {winner.label}")

        receipt = await coordinator.settle_auction(auction.address, winner)
        click.echo(f"💸 Settled: {winner.label} paid {format_amount(receipt.winning_amount)}")
        click.echo(f"  ✓ Seller balance: {format_amount(ledger.balance_of(seller.address))}")
        click.echo()
        click.echo("✅ Demo complete!")

    try:
        asyncio.run(run_demo())
    except SealbidError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    cli()
