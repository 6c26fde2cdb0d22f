#!/usr/bin/env python3
"""
SKINDROP — Prize Simulator

Plays N generated rounds to completion and measures what the board actually
pays, per profile: mean / median / max final bank, how often a round busts on
a STOP, and how often it runs into its cap. Also replays a batch of forced
sequences (fresh and mid-round rewrites) and counts any that miss max win.

Usage:
    python -m tools.prize_sim
    python -m tools.prize_sim --rounds 200000 --target-avg 9000 --max-win 20000 --seed 7
    python -m tools.prize_sim --json

    from tools.prize_sim import simulate_rounds
    result = simulate_rounds(rounds=10_000, seed=1)
    result.profiles["normal"].mean_bank
"""

from __future__ import annotations

import json
import random
import statistics
import time
from dataclasses import asdict, dataclass, field
from typing import Optional

from prize_engine import (
    OutcomeGenerator, Profile, SequenceIntegrityError, Stop, calculate_bank,
)

FORCED_CHECK_LIMIT = 2000


@dataclass
class ProfileStats:
    profile: str
    rounds: int = 0
    mean_bank: float = 0.0
    median_bank: float = 0.0
    max_bank: int = 0
    stop_rate: float = 0.0
    cap_hit_rate: float = 0.0


@dataclass
class PrizeSimResult:
    target_avg: int
    max_win: int
    max_picks: int
    rounds: int
    seed: Optional[int]
    mean_bank: float = 0.0
    profiles: dict = field(default_factory=dict)
    forced_checked: int = 0
    forced_failures: int = 0
    duration: float = 0.0

    @property
    def forced_ok(self) -> bool:
        return self.forced_failures == 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["forced_ok"] = self.forced_ok
        return d


def _forced_checks(gen: OutcomeGenerator, max_win: int, max_picks: int, count: int) -> int:
    """Replay fresh and mid-round forced sequences; return how many missed max win."""
    failures = 0
    for _ in range(count):
        try:
            seq = gen.generate_forced_max_win_sequence(max_win, max_picks)
            if calculate_bank(seq, max_picks - 1) != max_win:
                failures += 1

            base = gen.generate_sequence(max_win // 2, max_win, max_picks).sequence
            pick = gen.rng.randrange(max_picks)
            bank = calculate_bank(base, pick - 1)
            if any(isinstance(o, Stop) for o in base[:pick]):
                continue
            patched = gen.force_sequence_to_max_win(bank, pick, max_win, max_picks, base)
            if calculate_bank(patched, max_picks - 1) != max_win or patched[:pick] != base[:pick]:
                failures += 1
        except SequenceIntegrityError:
            failures += 1
    return failures


def simulate_rounds(target_avg: int = 9000, max_win: int = 20000, max_picks: int = 10,
                    rounds: int = 10000, seed: Optional[int] = None) -> PrizeSimResult:
    gen = OutcomeGenerator(random.Random(seed))
    result = PrizeSimResult(target_avg=target_avg, max_win=max_win, max_picks=max_picks,
                            rounds=rounds, seed=seed)
    t0 = time.time()

    banks: dict[Profile, list[int]] = {p: [] for p in Profile}
    stops = {p: 0 for p in Profile}
    cap_hits = {p: 0 for p in Profile}

    for _ in range(rounds):
        generated = gen.generate_sequence(target_avg, max_win, max_picks)
        final = calculate_bank(generated.sequence, max_picks - 1)
        banks[generated.profile].append(final)
        if any(isinstance(o, Stop) for o in generated.sequence):
            stops[generated.profile] += 1
        if final >= generated.cap:
            cap_hits[generated.profile] += 1

    everything = [b for values in banks.values() for b in values]
    result.mean_bank = statistics.fmean(everything) if everything else 0.0

    for profile, values in banks.items():
        n = len(values)
        result.profiles[profile.value] = ProfileStats(
            profile=profile.value,
            rounds=n,
            mean_bank=statistics.fmean(values) if n else 0.0,
            median_bank=statistics.median(values) if n else 0.0,
            max_bank=max(values) if n else 0,
            stop_rate=stops[profile] / n if n else 0.0,
            cap_hit_rate=cap_hits[profile] / n if n else 0.0,
        )

    result.forced_checked = min(rounds, FORCED_CHECK_LIMIT)
    result.forced_failures = _forced_checks(gen, max_win, max_picks, result.forced_checked)
    result.duration = time.time() - t0
    return result


# ═══════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════

def main():
    import argparse
    from rich.console import Console
    from rich.table import Table

    console = Console()
    parser = argparse.ArgumentParser(description="Measure the prize engine's payout distribution")
    parser.add_argument("--rounds", type=int, default=10000)
    parser.add_argument("--target-avg", type=int, default=9000)
    parser.add_argument("--max-win", type=int, default=20000)
    parser.add_argument("--max-picks", type=int, default=10)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--json", action="store_true", help="Print raw JSON instead of a table")
    args = parser.parse_args()

    result = simulate_rounds(args.target_avg, args.max_win, args.max_picks,
                             args.rounds, args.seed)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    console.print("\n[bold cyan]⚡ SKINDROP — Prize Simulator[/bold cyan]\n")
    console.print(f"Rounds: {result.rounds:,}   target avg {result.target_avg:,}   "
                  f"max win {result.max_win:,}   picks {result.max_picks}")

    table = Table()
    table.add_column("Profile", style="cyan")
    table.add_column("Rounds", justify="right")
    table.add_column("Mean", justify="right")
    table.add_column("Median", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Stop %", justify="right")
    table.add_column("Cap hit %", justify="right")
    for stats in result.profiles.values():
        table.add_row(
            stats.profile,
            f"{stats.rounds:,}",
            f"{stats.mean_bank:,.0f}",
            f"{stats.median_bank:,.0f}",
            f"{stats.max_bank:,}",
            f"{stats.stop_rate * 100:.1f}",
            f"{stats.cap_hit_rate * 100:.1f}",
        )
    console.print(table)

    console.print(f"[bold]Overall mean bank:[/bold] {result.mean_bank:,.0f}")
    style = "green" if result.forced_ok else "red"
    console.print(f"[bold]Forced sequences:[/bold] [{style}]{result.forced_checked - result.forced_failures}"
                  f"/{result.forced_checked} exact[/{style}]")
    console.print(f"[dim]{result.duration:.2f}s[/dim]")


if __name__ == "__main__":
    main()
