# ~/xnft-bridge/src/xnft/cli.py
import click
import logging
import sys
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .codec import (
    MessageType,
    SendWhole,
    decode,
    encode_whole,
)
from .errors import BridgeError
from .operation import compute_operation_id

console = Console()


def _hex_bytes(value: str, size: int, name: str) -> bytes:
    try:
        raw = bytes.fromhex(value.removeprefix("0x"))
    except ValueError:
        raise click.BadParameter(f"{name} is not valid hex")
    if len(raw) > size:
        raise click.BadParameter(f"{name} is longer than {size} bytes")
    return raw.rjust(size, b"\x00")


@click.group()
@click.version_option(version="0.1.0", prog_name="xnft")
@click.option('--verbose', '-v', is_flag=True, help='Log to the console')
def cli(verbose):
    """xnft - cross-ledger NFT bridge tooling"""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


@cli.command('decode')
@click.argument('payload')
def decode_cmd(payload):
    """Decode a hex transfer message"""
    try:
        raw = bytes.fromhex(payload.removeprefix("0x"))
    except ValueError:
        console.print("[bold red]Error:[/bold red] payload is not valid hex")
        sys.exit(1)

    try:
        msg = decode(raw)
    except BridgeError as e:
        console.print(f"[bold red]Decode error:[/bold red] {e}")
        sys.exit(1)

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("type", MessageType(msg.message_type).name)
    table.add_row("operation_id", "0x" + msg.operation_id.hex())
    if isinstance(msg, SendWhole):
        table.add_row("recipient", "0x" + msg.recipient.hex())
        table.add_row("asset_ids", ", ".join(str(a) for a in msg.asset_ids))
    else:
        table.add_row("asset_id", str(msg.asset_id))
        for recipient, amount in zip(msg.recipients, msg.amounts):
            table.add_row("0x" + recipient.hex(), str(amount))
    console.print(Panel(table, title=f"{len(raw)} bytes"))


@cli.command('operation-id')
@click.option('--chain-id', type=int, required=True, help='Chain id of the origin ledger')
@click.option('--contract', required=True, help='Bridge contract address')
@click.option('--sender', required=True, help='Sender address or 32-byte handle')
@click.option('--nonce', type=int, default=0, show_default=True)
def operation_id(chain_id, contract, sender, nonce):
    """Predict the id of a sender's operation"""
    handle = _hex_bytes(sender, 32, "sender")
    try:
        op_id = compute_operation_id(chain_id, contract, handle, nonce)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    click.echo("0x" + op_id.hex())


@cli.command('encode-whole')
@click.option('--operation-id', 'op_id', required=True, help='32-byte operation id')
@click.option('--recipient', required=True, help='Recipient address or 32-byte handle')
@click.argument('asset_ids', nargs=-1, type=int, required=True)
def encode_whole_cmd(op_id, recipient, asset_ids):
    """Encode a SendWhole message"""
    msg = SendWhole(
        operation_id=_hex_bytes(op_id, 32, "operation id"),
        recipient=_hex_bytes(recipient, 32, "recipient"),
        asset_ids=list(asset_ids),
    )
    try:
        payload = encode_whole(msg)
    except BridgeError as e:
        console.print(f"[bold red]Encode error:[/bold red] {e}")
        sys.exit(1)
    click.echo("0x" + payload.hex())


if __name__ == "__main__":
    cli()
