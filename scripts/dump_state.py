#!/usr/bin/env python3
"""Dump the cached gateway state and classify addresses.

Connects to the shared store, loads the state the same way every
process does, and prints the snapshot plus the classification of any
addresses given on the command line.

Usage
-----
::

    export GW_REDIS_URL="redis://localhost:6379/0"
    python scripts/dump_state.py 192.168.1.20 fe80::1 8.8.8.8

Options::

    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
    --sys-info           Include the device identity snapshot
    --verbose, -v        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from gwstate import GwStateConfig, SystemState  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _classify(system: SystemState, ip: str) -> dict[str, Any]:
    return {
        "local": system.is_local_ip(ip),
        "multicast": system.is_multicast_ip(ip),
        "dns_server": system.is_dns_server(ip),
        "learned": system.is_learned_neighbor(ip),
        "operator_domain": system.is_operator_domain(ip),
    }


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump the gateway system state for debugging / development.",
    )
    parser.add_argument("addresses", nargs="*", help="Addresses to classify")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--sys-info", action="store_true", help="Include the device identity snapshot")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    # Read-only: never clear the persisted operational state from here.
    config = GwStateConfig.from_env(clear_oper_on_start=False)
    result: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat()}

    async with SystemState(config) as system:
        result["ready"] = system.is_ready()
        result["version"] = system.version()
        result["state"] = system.cache.snapshot()
        result["classification"] = {ip: _classify(system, ip) for ip in args.addresses}
        if args.sys_info:
            result["sys_info"] = (await system.get_sys_info()).to_store()

    if args.json_mode or args.output:
        payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"JSON written to {args.output}", file=sys.stderr)
        else:
            print(payload)
        return

    out: list[str] = [_section("gwstate dump_state")]
    out.append(f"  time      : {result['timestamp']}")
    out.append(f"  ready     : {result['ready']}")
    out.append(f"  version   : {result['version']}")
    out.append(_section("STATE"))
    for key, value in result["state"].items():
        out.append(f"  {key}: {json.dumps(value, default=str)}")
    if result["classification"]:
        out.append(_section("CLASSIFICATION"))
        for ip, flags in result["classification"].items():
            marks = ", ".join(name for name, flag in flags.items() if flag) or "-"
            out.append(f"  {ip:<40} {marks}")
    if "sys_info" in result:
        out.append(_section("DEVICE"))
        for key, value in result["sys_info"].items():
            out.append(f"  {key}: {value}")
    print("\n".join(out))


if __name__ == "__main__":
    asyncio.run(main())
