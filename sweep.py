"""Command line sweep / close-all for a locally held keypair."""
import argparse
import asyncio
import os
import sys
from loguru import logger

from config import load_config
from services.batch_orchestrator import BatchOrchestrator, BatchReport
from services.clients import build_clients
from services.token_metadata import TokenMetadataService
from utils.logging import setup_logging
from utils.wallet import KeypairSigner, load_keypair_from_base58


def _print_report(report: BatchReport) -> None:
    print(report.summary)
    if report.message:
        print(f"  {report.message}")
    for entry in report.entries:
        print(f"  {entry.signature}  {', '.join(entry.tokens)}")


async def _run(args: argparse.Namespace, signer: KeypairSigner) -> int:
    config = load_config(args.config)
    solana, jupiter = build_clients(config)
    sweep_config = config.get("sweep", {})
    metadata = TokenMetadataService(
        jupiter,
        delay=float(config.get("jupiter", {}).get("metadata_delay", 0.1)),
    )
    orchestrator = BatchOrchestrator(
        solana,
        jupiter,
        metadata,
        target_mint=args.target or sweep_config["target_mint"],
        exclude=sweep_config.get("exclude") or (),
    )
    owner = signer.public_key()

    try:
        balances = await orchestrator.refresh_balances(owner)
        if not balances:
            print("Could not read wallet balances")
            return 1

        native = balances.get("SOL")
        print(f"Wallet: {owner}")
        print(f"SOL balance: {native.amount if native else 0.0}")
        print(f"Sweepable: {len(orchestrator.sweep_candidates(args.keep))}  Closeable: {len(orchestrator.close_candidates())}")

        if args.dry_run:
            return 0

        if args.command in ("sweep", "all"):
            _print_report(await orchestrator.sweep_all(owner, signer, keep=args.keep))
        if args.command in ("close", "all"):
            _print_report(await orchestrator.close_all(owner, signer))
        return 0

    finally:
        await metadata.close()
        await jupiter.close()
        await solana.close()


def main() -> int:
    ap = argparse.ArgumentParser(description="Sweep SPL tokens into one token and close empty token accounts.")
    ap.add_argument("command", choices=["sweep", "close", "all"], help="What to run")
    ap.add_argument("--config", default="config.yaml", help="Config file (default: config.yaml)")
    ap.add_argument(
        "--key-env",
        default="SWEEPER_PRIVATE_KEY",
        help="Environment variable holding the base58 private key (default: SWEEPER_PRIVATE_KEY)",
    )
    ap.add_argument("--target", default="", help="Target mint override")
    ap.add_argument("--keep", action="append", default=[], help="Mint to leave untouched (repeatable)")
    ap.add_argument("--dry-run", action="store_true", help="Only show what would be swept or closed")
    ap.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    args = ap.parse_args()

    setup_logging(level=args.log_level)

    keypair = load_keypair_from_base58(os.getenv(args.key_env, ""))
    if keypair is None:
        logger.error("No valid private key in ${}", args.key_env)
        return 2

    return asyncio.run(_run(args, KeypairSigner(keypair)))


if __name__ == "__main__":
    sys.exit(main())
