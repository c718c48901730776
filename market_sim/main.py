"""
Monte Carlo Market Simulation — Main Orchestrator
=================================================
Demo entry point for the complete launch simulation pipeline.

Execution Flow:
    1. Load configuration (JSON file in the input contract, or defaults)
    2. Select the executor once (process pool, else sequential)
    3. Monte Carlo run with aggregation and risk report
    4. Convergence diagnostics
    5. Correlation-regime stress testing

Usage:
    python -m market_sim.main [config.json]
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from market_sim.config import ScenarioOverrides, SimulationConfig
from market_sim.executor import create_executor
from market_sim.runner import MonteCarloEngine
from market_sim.stress_testing import full_regime_analysis

# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────
HEADLINE_METRICS = ["sales", "revenue", "net_profit", "roi", "margin", "unsold_pct"]
STRESS_ITERATIONS = 500


def print_header(text: str) -> None:
    """Print formatted section header."""
    width = 60
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width)


def print_metrics(metrics: dict, indent: int = 4) -> None:
    """Print flat metrics; nested dicts are skipped."""
    prefix = " " * indent
    for key, val in metrics.items():
        if isinstance(val, dict):
            continue
        if isinstance(val, float):
            print(f"{prefix}{key:.<35} {val:>14.4f}")
        else:
            print(f"{prefix}{key:.<35} {str(val):>14}")


def load_config(path: Optional[str]) -> SimulationConfig:
    if path is None:
        return SimulationConfig()
    with open(Path(path)) as f:
        return SimulationConfig.from_dict(json.load(f))


def main(argv: Optional[List[str]] = None) -> None:
    """Execute the simulation pipeline."""
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("\n" + "╔" + "═" * 58 + "╗")
    print("║   MONTE CARLO MARKET SIMULATION ENGINE                   ║")
    print("║   Product Launch Outcome & Risk Model                    ║")
    print("╚" + "═" * 58 + "╝")

    # ── PHASE 1: Configuration ────────────────────────────────
    print_header("PHASE 1 — CONFIGURATION")

    config = load_config(argv[0] if argv else None)
    print(f"  Product:       {config.offer.name}")
    print(f"  Price / COGS:  {config.offer.base_price:.2f} / {config.offer.cogs:.2f}")
    print(f"  Horizon:       {config.weeks} weeks")
    print(f"  Inventory:     {config.initial_inventory:,} units")
    print(f"  Iterations:    {config.iterations:,}")
    print(f"  Regime:        {config.market.correlation_preset}")

    with create_executor(parallel=True) as executor:
        print(f"  Executor:      {executor.kind} ({executor.unit_count} units)")
        engine = MonteCarloEngine(executor=executor)

        # ── PHASE 2: Monte Carlo Run ──────────────────────────
        print_header("PHASE 2 — MONTE CARLO SIMULATION")

        results = engine.run(config)
        print(f"  {results!r}")

        summary = pd.DataFrame({
            name: {
                "mean": results.statistics[name]["mean"],
                "std": results.statistics[name]["std"],
                "p5": results.statistics[name]["p5"],
                "p50": results.statistics[name]["p50"],
                "p95": results.statistics[name]["p95"],
                "ci_lower": results.statistics[name]["ci"]["lower"],
                "ci_upper": results.statistics[name]["ci"]["upper"],
            }
            for name in HEADLINE_METRICS
        }).T
        print("\n" + summary.to_string(float_format=lambda x: f"{x:,.2f}"))

        break_even = results.statistics["break_even_week"]
        if break_even is None:
            print("\n  No trial breaks even within the horizon.")
        else:
            print(f"\n  Median break-even week: {break_even['p50']:.0f}")

        # ── PHASE 3: Risk Report ──────────────────────────────
        print_header("PHASE 3 — RISK ANALYSIS")

        print("\n  ┌─ Inventory Risk ─────────────────────────────┐")
        print_metrics(results.risk["inventory"])

        print("\n  ┌─ Profitability Risk ─────────────────────────┐")
        print_metrics(results.risk["profitability"])

        # ── PHASE 4: Convergence ──────────────────────────────
        print_header("PHASE 4 — CONVERGENCE DIAGNOSTICS")

        conv = results.convergence
        print(f"  Converged:     {conv['converged']}")
        print(f"  Converged at:  {conv['converged_at']}")
        if conv["final"] is not None:
            for kpi, s in conv["final"]["kpis"].items():
                print(f"    {kpi:<20} cv(mean) = {s['cv_mean']:.3f}%")

        # ── PHASE 5: Stress Testing ───────────────────────────
        print_header("PHASE 5 — CORRELATION REGIME STRESS TESTING")

        stress_config = config.with_overrides(
            ScenarioOverrides(iterations=min(config.iterations, STRESS_ITERATIONS))
        )
        analysis = full_regime_analysis(stress_config, engine)
        for preset, entry in analysis.items():
            if preset == "base":
                continue
            print(f"\n  ┌─ Regime: {preset} " + "─" * max(0, 34 - len(preset)) + "┐")
            print_metrics(entry["impact"])

    print("\n" + "╔" + "═" * 58 + "╗")
    print("║   SIMULATION COMPLETE                                    ║")
    print("╚" + "═" * 58 + "╝\n")


if __name__ == "__main__":
    main()
