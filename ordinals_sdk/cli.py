"""Command-line interface for building Ordinals inscriptions.

The CLI is a thin façade over the envelope encoder, the commit/reveal
builders and the workflow layer. ``commit`` writes a JSON session receipt
that ``reveal`` and ``inscribe-status`` read back.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Sequence

from .address import address_for_key
from .config import ConfigurationError, OrdinalsConfig, load_config, set_default_config_path
from .errors import OrdinalsError
from .fees import format_floors_for_log, select_fee_rate
from .keys import PrivateKey
from .mempool_client import BroadcastError, MempoolClient, MempoolTransportError
from .model import ScriptType, UnspentOutput
from .networks import Network, get_network
from .ordinals.brc20 import Brc20Deploy, Brc20Mint, Brc20Transfer
from .ordinals.envelope import InscriptionEnvelope, TEXT_CONTENT_TYPE
from .ordinals.workflows import (
    Inscriber,
    InscriptionFlowError,
    load_session,
    save_session,
)

logger = logging.getLogger(__name__)

ENV_WIF = "ORDINALS_WIF"
DEFAULT_SESSION_PATH = Path("inscription-session.json")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _add_key_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--wif",
        default=None,
        help=f"Signing key in WIF form (default: ${ENV_WIF})",
    )


def _add_content_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="UTF-8 text to inscribe")
    source.add_argument("--file", type=Path, help="Path to a file to inscribe")
    parser.add_argument(
        "--content-type",
        default=None,
        help=f"MIME type recorded in the envelope (default: {TEXT_CONTENT_TYPE} for --text)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ordinals inscription SDK CLI")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--network", default=None, help="mainnet, testnet, signet or regtest")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    envelope_parser = subparsers.add_parser(
        "envelope", help="encode content into an inscription envelope script"
    )
    _add_content_arguments(envelope_parser)

    address_parser = subparsers.add_parser("address", help="derive an address for the signing key")
    _add_key_argument(address_parser)
    address_parser.add_argument(
        "--type",
        default="p2tr",
        choices=[script_type.value for script_type in ScriptType],
        help="Script type of the address (default: p2tr)",
    )

    brc20_parser = subparsers.add_parser("brc20", help="build a BRC-20 deploy, mint or transfer envelope")
    brc20_parser.add_argument("op", choices=["deploy", "mint", "transfer"])
    brc20_parser.add_argument("--tick", required=True, help="Four-character ticker")
    brc20_parser.add_argument("--max", dest="max_supply", help="Maximum supply (deploy)")
    brc20_parser.add_argument("--lim", dest="limit_per_mint", help="Per-mint limit (deploy)")
    brc20_parser.add_argument("--dec", dest="decimals", type=int, default=18, help="Decimals (deploy)")
    brc20_parser.add_argument("--amt", dest="amount", help="Amount (mint/transfer)")

    commit_parser = subparsers.add_parser(
        "commit", help="build, sign and broadcast the commit transaction"
    )
    _add_content_arguments(commit_parser)
    _add_key_argument(commit_parser)
    commit_parser.add_argument(
        "--utxos",
        type=Path,
        required=True,
        help="JSON file listing UTXOs (txid, vout, value, scriptType or address)",
    )
    commit_parser.add_argument("--change-address", required=True, help="Address receiving change")
    commit_parser.add_argument(
        "--receiver",
        required=True,
        help="Address that receives the inscription on reveal",
    )
    commit_parser.add_argument("--fee-rate", type=float, default=None, help="Fee rate in sat/vB")
    commit_parser.add_argument("--postage", type=int, default=None, help="Sats carried by the inscription")
    commit_parser.add_argument("--no-rbf", action="store_true", help="Do not signal replace-by-fee")
    commit_parser.add_argument("--no-broadcast", action="store_true", help="Sign only; do not broadcast")
    commit_parser.add_argument(
        "--session",
        type=Path,
        default=DEFAULT_SESSION_PATH,
        help=f"Where to write the session receipt (default: {DEFAULT_SESSION_PATH})",
    )

    reveal_parser = subparsers.add_parser("reveal", help="build and broadcast the reveal for a session")
    _add_key_argument(reveal_parser)
    reveal_parser.add_argument("--session", type=Path, default=DEFAULT_SESSION_PATH)
    reveal_parser.add_argument(
        "--fee-rate",
        type=float,
        default=None,
        help="Override the fee rate recorded at commit time",
    )
    reveal_parser.add_argument("--no-broadcast", action="store_true", help="Sign only; do not broadcast")

    status_parser = subparsers.add_parser("inscribe-status", help="show the state of a session receipt")
    status_parser.add_argument("--session", type=Path, default=DEFAULT_SESSION_PATH)

    return parser


def _load_settings(args: argparse.Namespace) -> OrdinalsConfig:
    overrides: dict[str, Any] = {}
    if args.network:
        overrides["network"] = args.network
    return load_config(overrides=overrides)


def _load_key(args: argparse.Namespace, network: Network, source: str = "the configured network") -> PrivateKey:
    wif = args.wif or os.environ.get(ENV_WIF)
    if not wif:
        raise CLIError(f"A signing key is required: pass --wif or set {ENV_WIF}")
    try:
        key = PrivateKey.from_wif(wif)
    except ValueError as exc:
        raise CLIError(f"Invalid WIF key: {exc}") from exc
    if key.network.wif_prefix != network.wif_prefix:
        raise CLIError(f"Key is for {key.network.name}, but {source} is {network.name}")
    return key


def _load_envelope(args: argparse.Namespace) -> InscriptionEnvelope:
    if args.text is not None:
        return InscriptionEnvelope(args.content_type or TEXT_CONTENT_TYPE, args.text.encode("utf-8"))
    if not args.content_type:
        raise CLIError("--content-type is required with --file")
    try:
        content = args.file.read_bytes()
    except OSError as exc:
        raise CLIError(f"Unable to read {args.file}: {exc}") from exc
    return InscriptionEnvelope(args.content_type, content)


def _load_utxos(path: Path) -> list[UnspentOutput]:
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise CLIError(f"Unable to read UTXOs from {path}: {exc}") from exc
    if not isinstance(raw, list) or not raw:
        raise CLIError(f"{path} must contain a non-empty JSON list of UTXOs")
    try:
        return [UnspentOutput.from_dict(entry) for entry in raw]
    except (KeyError, TypeError) as exc:
        raise CLIError(f"Malformed UTXO entry in {path}: {exc}") from exc


def _parse_decimal(raw: str | None, flag: str) -> Decimal:
    if raw is None:
        raise CLIError(f"{flag} is required for this operation")
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise CLIError(f"Invalid decimal for {flag}: {raw}") from exc


def cmd_envelope(args: argparse.Namespace) -> None:
    envelope = _load_envelope(args)
    payload = envelope.summary()
    payload["script_hex"] = envelope.script.hex()
    print(json.dumps(payload, indent=2))


def cmd_address(args: argparse.Namespace, config: OrdinalsConfig) -> None:
    key = _load_key(args, config.network)
    print(address_for_key(key.public_key, ScriptType.parse(args.type), config.network))


def cmd_brc20(args: argparse.Namespace) -> None:
    if args.op == "deploy":
        operation = Brc20Deploy(
            tick=args.tick,
            max_supply=_parse_decimal(args.max_supply, "--max"),
            limit_per_mint=_parse_decimal(args.limit_per_mint, "--lim"),
            decimals=args.decimals,
        )
    elif args.op == "mint":
        operation = Brc20Mint(tick=args.tick, amount=_parse_decimal(args.amount, "--amt"))
    else:
        operation = Brc20Transfer(tick=args.tick, amount=_parse_decimal(args.amount, "--amt"))
    envelope = operation.envelope()
    print(
        json.dumps(
            {
                "content_type": envelope.content_type,
                "payload": envelope.content.decode("utf-8"),
                "script_hex": envelope.script.hex(),
            },
            indent=2,
        )
    )


def _resolve_fee_rate(
    requested: float | None,
    config: OrdinalsConfig,
    client: MempoolClient | None,
) -> float:
    selection = select_fee_rate(
        client,
        user_fee_rate_satvb=requested if requested is not None else config.fee_rate,
        min_fee_rate_satvb_floor=config.min_fee_rate,
    )
    logger.info(
        "Using %.2f sat/vB (%s; floors: %s)",
        selection.fee_rate_sat_vb,
        selection.source,
        format_floors_for_log(selection.floors_applied),
    )
    return selection.fee_rate_sat_vb


def cmd_commit(args: argparse.Namespace, config: OrdinalsConfig) -> None:
    key = _load_key(args, config.network)
    envelope = _load_envelope(args)
    utxos = _load_utxos(args.utxos)
    client = MempoolClient(config.mempool)
    fee_rate = _resolve_fee_rate(args.fee_rate, config, client)

    inscriber = Inscriber(
        key,
        None if args.no_broadcast else client,
        network=config.network,
        dust_limit=config.dust_limit,
        postage=config.postage,
        replaceable_commit=not args.no_rbf,
    )
    session = inscriber.prepare_commit(
        envelope,
        utxos,
        args.change_address,
        args.receiver,
        fee_rate,
        postage=args.postage,
    )
    save_session(args.session, session)
    logger.info("Session receipt written to %s", args.session)
    try:
        inscriber.publish_commit(session)
    except InscriptionFlowError:
        logger.warning(
            "Commit %s may still reach the network; its receipt is kept at %s",
            session.commit_txid,
            args.session,
        )
        raise
    save_session(args.session, session)
    summary = session.summary()
    summary["commit_hex"] = session.commit_hex
    print(json.dumps(summary, indent=2))


def cmd_reveal(args: argparse.Namespace) -> None:
    session = load_session(args.session)
    network = get_network(session.network)
    if args.network and get_network(args.network) != network:
        raise CLIError(f"{args.session} was committed on {network.name}, not {args.network}")
    config = load_config(overrides={"network": network.name})
    key = _load_key(args, network, source=f"the network of {args.session}")
    client = None if args.no_broadcast else MempoolClient(config.mempool)
    inscriber = Inscriber(
        key,
        client,
        network=session.network,
        dust_limit=config.dust_limit,
    )
    session = inscriber.reveal(session, fee_rate=args.fee_rate)
    save_session(args.session, session)
    summary = session.summary()
    summary["reveal_hex"] = session.reveal_hex
    print(json.dumps(summary, indent=2))


def cmd_inscribe_status(args: argparse.Namespace) -> None:
    session = load_session(args.session)
    print(json.dumps(session.summary(), indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.config:
            set_default_config_path(args.config)
        if args.command == "envelope":
            cmd_envelope(args)
        elif args.command == "brc20":
            cmd_brc20(args)
        elif args.command == "inscribe-status":
            cmd_inscribe_status(args)
        elif args.command == "reveal":
            cmd_reveal(args)
        else:
            config = _load_settings(args)
            if args.command == "address":
                cmd_address(args, config)
            elif args.command == "commit":
                cmd_commit(args, config)
            else:  # pragma: no cover - argparse enforces choices
                raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        InscriptionFlowError,
        BroadcastError,
        MempoolTransportError,
        OrdinalsError,
        ValueError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
