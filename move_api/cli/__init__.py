"""
move_api.cli
============

`move-api` command-line tool.

Usage
-----
  move-api decode-module coin.mv                 # JSON ABI on stdout
  move-api decode-module coin.mv --table         # human summary
  move-api decode-script main.mv --format cbor --out abi.cbor
  move-api module-info coin.mv
  move-api sort-bundle a.mv b.mv c.mv --out-dir ordered/
  move-api struct-tag from-string '0x1::coin::Coin<0x1::aptos_coin::AptosCoin>'
  move-api struct-tag to-string 0x0000…01

Global options: --profile (default|legacy|strict), --log-level, --log-json,
--version. Blob inputs are files holding raw bytes or `0x`-hex text; `-`
reads stdin.

Exit codes: 0 ok, 1 rejected input (error JSON on stderr), 2 usage error.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import msgspec
import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import logging as mlog
from ..abi import FORMATS, MoveFunctionAbi, MoveModuleAbi, encode_abi, extract_abi
from ..bundle import sort_bundle
from ..config import DeserializationProfile, get_preset, load_profile
from ..decoder import decode_module, decode_script
from ..errors import MoveApiError
from ..identity import read_identity
from ..type_tag import from_binary, parse_text, to_binary, to_text
from ..version import __version__

log = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Inspect and order Move bytecode.")
struct_tag_app = typer.Typer(no_args_is_help=True, add_completion=False, help="Struct tag text/BCS conversion.")
app.add_typer(struct_tag_app, name="struct-tag")

EXIT_REJECTED = 1


# ----------------- helpers -----------------


def _read_blob(path: str) -> bytes:
    if path == "-":
        data = sys.stdin.buffer.read()
    else:
        p = Path(path)
        if not p.is_file():
            raise typer.BadParameter(f"no such file: {path}")
        data = p.read_bytes()
    text = data.strip()
    if text[:2] in (b"0x", b"0X"):
        try:
            return bytes.fromhex(text[2:].decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise typer.BadParameter(f"{path}: invalid hex input") from None
    return data


def _profile(ctx: typer.Context) -> DeserializationProfile:
    obj: Dict[str, Any] = ctx.obj or {}
    return obj.get("profile") or load_profile()


def _guard(fn: Callable[[], Any]) -> Any:
    """Run fn; turn a MoveApiError into a JSON error on stderr and exit 1."""
    try:
        return fn()
    except MoveApiError as e:
        typer.echo(msgspec.json.encode({"error": e.to_dict()}).decode(), err=True)
        raise typer.Exit(EXIT_REJECTED) from None


def _emit(payload: bytes, fmt: str, out: Optional[Path]) -> None:
    if out is not None:
        out.write_bytes(payload)
        typer.echo(f"wrote {len(payload)} bytes to {out}")
    elif fmt == "json":
        typer.echo(payload.decode("utf-8"))
    else:
        typer.echo("0x" + payload.hex())


def _function_rows(t: Table, fns: List[MoveFunctionAbi]) -> None:
    for fn in fns:
        generics = ", ".join("+".join(p.constraints) or "-" for p in fn.generic_type_params)
        t.add_row(
            fn.name,
            fn.visibility + (" entry" if fn.is_entry else ""),
            f"<{generics}>" if generics else "",
            ", ".join(fn.params),
            ", ".join(fn.return_),
        )


def _print_abi_table(abi: Any) -> None:
    console = Console()
    fns = Table(title="Functions", box=box.SIMPLE)
    for col in ("name", "visibility", "generics", "params", "return"):
        fns.add_column(col, overflow="fold")
    if isinstance(abi, MoveModuleAbi):
        _function_rows(fns, list(abi.exposed_functions))
        structs = Table(title="Structs", box=box.SIMPLE)
        for col in ("name", "abilities", "fields"):
            structs.add_column(col, overflow="fold")
        for st in abi.structs:
            fields = "native" if st.is_native else ", ".join(f"{f.name}: {f.type}" for f in st.fields)
            structs.add_row(st.name, ", ".join(st.abilities), fields)
        console.print(Panel(fns, title=f"{abi.address}::{abi.name}", expand=False))
        console.print(structs)
    else:
        _function_rows(fns, [abi])
        console.print(Panel(fns, title="script", expand=False))


# ----------------- CLI -----------------


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"move-api {__version__}")
        raise typer.Exit(0)


@app.callback()
def _meta(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", help="Print version and exit", is_eager=True, callback=_print_version
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Deserialization profile preset"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for move_api loggers"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines"),
) -> None:
    mlog.configure(json=log_json, level=log_level)
    chosen = _guard(lambda: get_preset(profile) if profile else load_profile())
    ctx.obj = {"profile": chosen}


def _decode_command(ctx: typer.Context, path: str, fmt: str, out: Optional[Path], table: bool, script: bool) -> None:
    if fmt not in FORMATS:
        raise typer.BadParameter(f"--format must be one of {', '.join(FORMATS)}")
    blob = _read_blob(path)
    profile = _profile(ctx)
    decode = decode_script if script else decode_module
    abi = _guard(lambda: extract_abi(decode(blob, profile)))
    if table:
        _print_abi_table(abi)
        return
    _emit(encode_abi(abi, fmt), fmt, out)


@app.command("decode-module")
def decode_module_cmd(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Module file (raw or 0x-hex), '-' for stdin"),
    fmt: str = typer.Option("json", "--format", "-f", help="json | cbor"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the encoded ABI to a file"),
    table: bool = typer.Option(False, "--table", help="Render a human-readable summary"),
) -> None:
    """Decode a compiled module and print its ABI."""
    _decode_command(ctx, path, fmt, out, table, script=False)


@app.command("decode-script")
def decode_script_cmd(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Script file (raw or 0x-hex), '-' for stdin"),
    fmt: str = typer.Option("json", "--format", "-f", help="json | cbor"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the encoded ABI to a file"),
    table: bool = typer.Option(False, "--table", help="Render a human-readable summary"),
) -> None:
    """Decode a compiled script and print its `main` ABI."""
    _decode_command(ctx, path, fmt, out, table, script=True)


@app.command("module-info")
def module_info_cmd(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Module file (raw or 0x-hex), '-' for stdin"),
) -> None:
    """Print the module's {address, name}."""
    blob = _read_blob(path)
    mid = _guard(lambda: read_identity(blob, _profile(ctx)))
    typer.echo(msgspec.json.encode(mid.to_dict()).decode())


@app.command("sort-bundle")
def sort_bundle_cmd(
    ctx: typer.Context,
    paths: List[str] = typer.Argument(..., help="Module files in submission order"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Write blobs as NNN_<name>.mv in sorted order"),
) -> None:
    """Order a bundle so every module follows its in-bundle dependencies."""
    blobs = [_read_blob(p) for p in paths]
    result = _guard(lambda: sort_bundle(blobs, _profile(ctx)))
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)
        for pos, entry in enumerate(result.entries):
            (out_dir / f"{pos:03d}_{entry.module_id.name}.mv").write_bytes(entry.code)
    for entry in result.entries:
        typer.echo(f"{entry.module_id}\t{paths[entry.index]}")


@struct_tag_app.command("to-string")
def struct_tag_to_string_cmd(
    data: str = typer.Argument(..., help="BCS bytes as 0x-hex"),
) -> None:
    """Render canonical BCS bytes as struct tag text."""
    raw = data[2:] if data.startswith(("0x", "0X")) else data
    try:
        blob = bytes.fromhex(raw)
    except ValueError:
        raise typer.BadParameter("expected hex-encoded BCS bytes") from None
    typer.echo(_guard(lambda: to_text(from_binary(blob))))


@struct_tag_app.command("from-string")
def struct_tag_from_string_cmd(
    text: str = typer.Argument(..., help="Struct tag text, e.g. 0x1::coin::Coin<u64>"),
) -> None:
    """Encode struct tag text as canonical BCS (0x-hex)."""
    typer.echo("0x" + _guard(lambda: to_binary(parse_text(text))).hex())


def main(argv: Optional[List[str]] = None) -> None:
    app(args=argv, prog_name="move-api")


__all__ = ["app", "main"]
