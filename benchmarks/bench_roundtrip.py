#!/usr/bin/env python3
# Copyright 2025 Maida.AI
# SPDX-License-Identifier: Apache-2.0
"""Benchmark: SET_ACTIVITY round-trip latency per transport backend.

Each backend publishes the same activity ``--runs`` times against a local
loopback server and records the latency of every request/response pair.
Every response is checked against its nonce and echoed activity.

Prerequisites
-------------
$ pip install -e ".[bench]"

Usage
-----
$ python benchmarks/bench_roundtrip.py --runs 2000 --backends blocking anyio
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shutil
import tempfile
import time
from statistics import quantiles

import anyio
from rich import box
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from presencewire import ActivityBuilder, AsyncClient, Client, LoopbackServer

CLIENT_ID = "1045800378228281345"
SCALE = {"ns": 1e9, "us": 1e6, "ms": 1e3}


def make_activity(run: int) -> dict:
    """Unique payload per run so a stale reply can never pass validation."""
    return ActivityBuilder().state(f"Run {run}").details("benchmark").party("bench", 1, 4).build().to_payload()


def summarize(latencies: list[float], failures: int, elapsed: float) -> dict[str, float]:
    """Reduce raw latencies (seconds) to percentiles and rate."""
    cuts = quantiles(latencies, n=100) if len(latencies) > 1 else latencies * 99
    return {
        "p50": cuts[49],
        "p95": cuts[94],
        "p99": cuts[98],
        "rate": len(latencies) / elapsed if elapsed else 0.0,
        "success_rate": 100.0 * (len(latencies) - failures) / max(len(latencies), 1),
    }


def bench_blocking(address: str, runs: int) -> dict[str, float]:
    latencies: list[float] = []
    failures = 0
    started = time.perf_counter()
    with Client(CLIENT_ID, endpoint=address) as client:
        for run in tqdm(range(runs), desc="blocking"):
            activity = make_activity(run)
            t0 = time.perf_counter()
            response = client.set_activity(activity)
            latencies.append(time.perf_counter() - t0)
            if response.data != activity:
                failures += 1
    return summarize(latencies, failures, time.perf_counter() - started)


async def _bench_async(address: str, runs: int, transport: str) -> dict[str, float]:
    latencies: list[float] = []
    failures = 0
    started = time.perf_counter()
    async with AsyncClient(CLIENT_ID, endpoint=address, transport=transport) as client:
        for run in tqdm(range(runs), desc=transport):
            activity = make_activity(run)
            t0 = time.perf_counter()
            response = await client.set_activity(activity)
            latencies.append(time.perf_counter() - t0)
            if response.data != activity:
                failures += 1
    return summarize(latencies, failures, time.perf_counter() - started)


def bench_asyncio(address: str, runs: int) -> dict[str, float]:
    return asyncio.run(_bench_async(address, runs, "asyncio"))


def bench_anyio(address: str, runs: int) -> dict[str, float]:
    return anyio.run(_bench_async, address, runs, "anyio")


BACKENDS = {"blocking": bench_blocking, "asyncio": bench_asyncio, "anyio": bench_anyio}


def print_table(results: dict[str, dict[str, float]], unit: str = "us"):
    """Print benchmark results table.

    Args:
        results: Dictionary of benchmark results
        unit: Time unit for display
    """
    scale = SCALE[unit]
    console = Console()
    table = Table(title="presencewire SET_ACTIVITY round trip", box=box.SIMPLE_HEAVY)
    table.add_column("Transport")
    table.add_column(f"p50 ({unit}, ↓)")
    table.add_column(f"p95 ({unit}, ↓)")
    table.add_column(f"p99 ({unit}, ↓)")
    table.add_column("Requests/s (↑)")
    table.add_column("Success Rate (%)")

    for k, v in results.items():
        success_rate = v["success_rate"]
        success_color = "green" if success_rate == 100.0 else "red"
        table.add_row(
            k,
            f"{v['p50'] * scale:.2f}",
            f"{v['p95'] * scale:.2f}",
            f"{v['p99'] * scale:.2f}",
            f"{v['rate']:.0f}",
            f"[{success_color}]{success_rate:.1f}%[/{success_color}]",
        )

    console.print(table)


def main():
    """Main benchmark function."""
    parser = argparse.ArgumentParser(description="Benchmark presencewire transports")
    parser.add_argument("--runs", type=int, default=500, help="Requests per backend")
    parser.add_argument("--unit", choices=["us", "ms", "ns"], default="us", help="Latency unit")
    parser.add_argument("--backends", nargs="+", choices=list(BACKENDS), default=list(BACKENDS))
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    socket_dir = tempfile.mkdtemp(prefix="pw-bench-")
    server = LoopbackServer(os.path.join(socket_dir, "discord-ipc-0"))
    server.start()

    print(f"Benchmarking {args.runs} runs per backend against {server.address}")

    try:
        results = {name: BACKENDS[name](server.address, args.runs) for name in args.backends}
    finally:
        server.stop()
        shutil.rmtree(socket_dir, ignore_errors=True)

    print_table(results, args.unit)


if __name__ == "__main__":
    main()
