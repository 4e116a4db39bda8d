# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Resolution CLI Commands

Snapshot format (all keys optional except "markets"):

    {
      "markets":   [Market, ...],
      "evidence":  [EvidenceSubmission, ...],
      "disputes":  [Dispute, ...],
      "volumes":   [BettingVolume, ...],
      "histories": [DisputerHistory, ...],
      "external":  [ExternalSignal, ...],
      "balances":  {"account": "100"},
      "allowances": {"account": "100"}
    }

Allowances are granted to the configured bond custodian.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

from blockcast_core.adapters.audit import JsonlAuditSink
from blockcast_core.adapters.memory import (
    InMemoryAuditSink,
    InMemoryBondLedger,
    InMemoryDisputeStore,
    InMemoryEvidenceStore,
    InMemoryMarketStore,
    InMemoryReputationSource,
    InMemoryVolumeSource,
)
from blockcast_core.config import BlockcastConfig
from blockcast_core.engine import BlockcastEngine
from blockcast_core.errors import ResolutionError
from blockcast_core.runtime_config import EngineRuntimeConfig
from blockcast_core.schema.dispute import Dispute, DisputerHistory
from blockcast_core.schema.evidence import EvidenceSubmission
from blockcast_core.schema.external import ExternalSignal
from blockcast_core.schema.market import BettingVolume, Market
from blockcast_core.schema.serialization import json_safe
from blockcast_core.settlement.types import MoneyCAST
from blockcast_core.utils.runtime import ensure_utc, utc_now
from blockcast_core.verification.feed import FixtureVerificationFeed


def _parse_now(raw: str | None) -> datetime:
    if not raw:
        return utc_now()
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def load_snapshot(payload: dict[str, Any], config: BlockcastConfig, *, audit_path: str | None = None) -> BlockcastEngine:
    """Build an engine over in-memory stores seeded from a snapshot dict."""
    markets = InMemoryMarketStore(Market.model_validate(m) for m in payload.get("markets") or [])

    evidence = InMemoryEvidenceStore()
    for e in payload.get("evidence") or []:
        evidence.add(EvidenceSubmission.parse(e))

    disputes = InMemoryDisputeStore(Dispute.model_validate(d) for d in payload.get("disputes") or [])

    ledger = InMemoryBondLedger(custodian=config.bond_custodian_address)
    for account, amount in (payload.get("balances") or {}).items():
        ledger.set_balance(account, MoneyCAST.from_str(str(amount)))
    for account, amount in (payload.get("allowances") or {}).items():
        ledger.approve(account, config.bond_custodian_address, MoneyCAST.from_str(str(amount)))

    volumes = InMemoryVolumeSource(BettingVolume.model_validate(v) for v in payload.get("volumes") or [])
    reputation = InMemoryReputationSource(DisputerHistory.model_validate(h) for h in payload.get("histories") or [])

    feed = None
    if "external" in payload:
        signals = [ExternalSignal.model_validate(s) for s in payload.get("external") or []]
        feed = FixtureVerificationFeed({s.market_id: s for s in signals})

    audit = JsonlAuditSink(audit_path) if audit_path else InMemoryAuditSink()
    return BlockcastEngine(
        config,
        markets=markets,
        evidence=evidence,
        disputes=disputes,
        ledger=ledger,
        volumes=volumes,
        reputation=reputation,
        audit=audit,
        feed=feed,
    )


def _read_snapshot(path: str) -> dict[str, Any] | None:
    snapshot_path = Path(path)
    if not snapshot_path.exists():
        print(f"✗ Snapshot file not found: {snapshot_path}", file=sys.stderr)
        return None
    try:
        payload = json.loads(snapshot_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"✗ Failed to parse JSON: {e}", file=sys.stderr)
        return None
    if not isinstance(payload, dict):
        print("✗ Snapshot must be a JSON object", file=sys.stderr)
        return None
    return payload


def _emit(data: Any, output: str | None) -> None:
    text = json.dumps(json_safe(data), ensure_ascii=False, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        print(f"Written to {output}")
    else:
        print(text)


def _config() -> BlockcastConfig:
    return BlockcastConfig(runtime=EngineRuntimeConfig.load_from_env())


def cmd_run_pass(args: argparse.Namespace) -> int:
    """Run one resolution pass over the snapshot."""
    payload = _read_snapshot(args.snapshot)
    if payload is None:
        return 1

    engine = load_snapshot(payload, _config(), audit_path=args.audit_log)
    now = _parse_now(args.now)

    async def _run():
        try:
            return await engine.run_pass(now, trace_id=args.trace_id)
        finally:
            await engine.close()

    report = asyncio.run(_run())
    _emit(
        {
            "pass": report.to_dict(),
            "markets": [m.to_dict() for m in engine.markets.list_markets()],
        },
        args.output,
    )
    return 0 if not report.errors else 2


def cmd_preview_settlement(args: argparse.Namespace) -> int:
    """Print the settlement plan a DISPUTABLE market would execute."""
    payload = _read_snapshot(args.snapshot)
    if payload is None:
        return 1

    engine = load_snapshot(payload, _config())
    try:
        plan = engine.preview_settlement(args.market_id, now=_parse_now(args.now))
    except ResolutionError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    _emit(plan.to_dict(), args.output)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective runtime configuration."""
    _emit(EngineRuntimeConfig.load_from_env().to_safe_log_dict(), None)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blockcast-cli",
        description="BlockCast resolution engine commands",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run-pass command
    run_parser = subparsers.add_parser(
        "run-pass",
        help="Run one resolution pass over a JSON snapshot",
    )
    run_parser.add_argument(
        "snapshot",
        help="Path to snapshot JSON",
    )
    run_parser.add_argument(
        "--now",
        help="ISO-8601 timestamp to resolve at (default: current UTC time)",
    )
    run_parser.add_argument(
        "--output", "-o",
        help="Output file (default: stdout)",
    )
    run_parser.add_argument(
        "--audit-log",
        help="Append audit records to this JSONL file",
    )
    run_parser.add_argument(
        "--trace-id",
        help="Write a local trace under data/trace/<id>.jsonl",
    )
    run_parser.set_defaults(func=cmd_run_pass)

    # preview-settlement command
    preview_parser = subparsers.add_parser(
        "preview-settlement",
        help="Print the settlement plan for a DISPUTABLE market",
    )
    preview_parser.add_argument(
        "snapshot",
        help="Path to snapshot JSON",
    )
    preview_parser.add_argument(
        "market_id",
        help="Market to plan",
    )
    preview_parser.add_argument(
        "--now",
        help="ISO-8601 timestamp (default: current UTC time)",
    )
    preview_parser.add_argument(
        "--output", "-o",
        help="Output file (default: stdout)",
    )
    preview_parser.set_defaults(func=cmd_preview_settlement)

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Print the effective runtime configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the BlockCast CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    except ResolutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
