"""
lightclient.cli
===============

Operator tooling for light-client wire values:

- decode      decode hex (compact or tagged) and print the introspection view
- convert     re-encode a value from one wire form to the other
- commitment  compute the commitment (next_bp_hash) of a validator list file
- config      print the effective configuration

Examples:
  lightclient decode header 0x0a0b...
  lightclient convert consensus-state 0x... --from compact --to tagged
  lightclient commitment validators.json
  python -m lightclient config --json
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import codec
from .config import get_config
from .crypto import PublicKey
from .errors import LightClientError
from .logging import configure_from_config
from .types import ClientState, ConsensusState, Header, Height, Misbehaviour, Proof
from .validators import ValidatorSet, ValidatorStake
from .version import __version__

TYPES: Dict[str, type] = {
    "height": Height,
    "client-state": ClientState,
    "consensus-state": ConsensusState,
    "header": Header,
    "misbehaviour": Misbehaviour,
    "proof": Proof,
}


def _parse_hex(data: str) -> bytes:
    s = data.strip()
    if s.startswith(("0x", "0X")):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise typer.BadParameter(f"not valid hex: {e}") from e


def _resolve_type(name: str) -> type:
    try:
        return TYPES[name.lower()]
    except KeyError:
        raise typer.BadParameter(f"unknown type {name!r}; expected one of {', '.join(TYPES)}") from None


def _check_format(fmt: str) -> str:
    if fmt not in codec.FORMATS:
        raise typer.BadParameter(f"format must be one of {', '.join(codec.FORMATS)}")
    return fmt


def _fail(console: Console, err: LightClientError, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps({"ok": False, "error": err.to_dict()}))
    else:
        console.print(f"[red]error[/red] {err}")
    raise typer.Exit(1)


def _load_validators(path: Path) -> ValidatorSet:
    """
    Read a JSON list of {"account_id", "public_key": "ed25519:<hex>", "stake"}.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise typer.BadParameter(f"cannot read validator file: {e}") from e
    if not isinstance(raw, list):
        raise typer.BadParameter("validator file must hold a JSON list")
    entries = []
    for i, item in enumerate(raw):
        try:
            entries.append(
                ValidatorStake(
                    account_id=item["account_id"],
                    public_key=PublicKey.parse(item["public_key"]),
                    stake=int(item["stake"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise typer.BadParameter(f"entry {i}: {e}") from e
    try:
        return ValidatorSet(tuple(entries))
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _render(console: Console, title: str, view: Any) -> None:
    table = Table(title=title, box=box.SIMPLE_HEAVY, show_header=True, header_style="bold")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", overflow="fold")

    def add(prefix: str, v: Any) -> None:
        if isinstance(v, dict):
            for k, sv in v.items():
                add(f"{prefix}.{k}" if prefix else k, sv)
        elif isinstance(v, list) and v and isinstance(v[0], (dict, list)):
            for i, sv in enumerate(v):
                add(f"{prefix}[{i}]", sv)
        else:
            table.add_row(prefix, json.dumps(v) if not isinstance(v, str) else v)

    add("", view)
    console.print(table)


def build_app() -> typer.Typer:
    app = typer.Typer(
        name="lightclient",
        help="Inspect and convert light-client wire values",
        no_args_is_help=True,
        add_completion=False,
    )
    console = Console()

    @app.callback(invoke_without_command=True)
    def _meta(
        ctx: typer.Context,
        version: bool = typer.Option(False, "--version", "-V", help="Print version and exit", is_eager=True),
    ) -> None:
        if version:
            typer.echo(f"lightclient {__version__}")
            raise typer.Exit(0)
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())
            raise typer.Exit(0)
        configure_from_config(get_config())

    @app.command("decode")
    def decode_cmd(
        type_name: str = typer.Argument(..., metavar="TYPE", help=f"One of: {', '.join(TYPES)}"),
        data: str = typer.Argument(..., help="Hex-encoded bytes (0x prefix optional)"),
        fmt: str = typer.Option("compact", "--format", "-f", help="compact | tagged"),
        json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    ) -> None:
        """Decode a value and print its introspection view."""
        cls = _resolve_type(type_name)
        raw = _parse_hex(data)
        try:
            value = codec.decode(cls, raw, _check_format(fmt))
        except LightClientError as e:
            _fail(console, e, json_out)
            return
        view = value.pretty()
        if json_out:
            typer.echo(json.dumps({"ok": True, "type": cls.TYPE_URL, "value": view}, indent=2, sort_keys=True))
            return
        _render(console, cls.TYPE_URL, view)

    @app.command("convert")
    def convert_cmd(
        type_name: str = typer.Argument(..., metavar="TYPE", help=f"One of: {', '.join(TYPES)}"),
        data: str = typer.Argument(..., help="Hex-encoded bytes (0x prefix optional)"),
        src: str = typer.Option("compact", "--from", help="compact | tagged"),
        dst: str = typer.Option("tagged", "--to", help="compact | tagged"),
    ) -> None:
        """Re-encode a value into the other wire form; prints hex."""
        cls = _resolve_type(type_name)
        try:
            value = codec.decode(cls, _parse_hex(data), _check_format(src))
        except LightClientError as e:
            _fail(console, e, False)
            return
        typer.echo("0x" + codec.encode(value, _check_format(dst)).hex())

    @app.command("commitment")
    def commitment_cmd(
        path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON validator list"),
        json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    ) -> None:
        """Print the commitment hash and total stake of an ordered validator list."""
        vs = _load_validators(path)
        out = {
            "commitment": "0x" + vs.commitment().hex(),
            "validators": len(vs),
            "total_stake": str(vs.total_stake),
        }
        if json_out:
            typer.echo(json.dumps(out, indent=2, sort_keys=True))
            return
        body = "\n".join(f"[bold]{k}[/bold]: {v}" for k, v in out.items())
        console.print(Panel(body, title=str(path), expand=False))

    @app.command("config")
    def config_cmd(
        json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    ) -> None:
        """Print the effective configuration (environment + defaults)."""
        cfg = get_config().to_dict()
        if json_out:
            typer.echo(json.dumps(cfg, indent=2, sort_keys=True))
            return
        _render(console, "lightclient config", cfg)

    return app


def main(argv: Optional[list[str]] = None) -> int:
    app = build_app()
    app(args=argv, prog_name="lightclient")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
