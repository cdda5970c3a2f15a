#!/usr/bin/env python3
"""Seed a velocity state file with plausible history.

Every task completion goes through :class:`VelocityAggregator`, so the
generated document satisfies the same invariants as real data. Useful
for trying out dashboards against a populated store.

Usage
-----
::

    python scripts/generate_mock_data.py --state-dir .specvelocity

Options::

    --state-dir DIR      State directory (default: $SPECVELOCITY_STATE_DIR or .specvelocity)
    --weeks N            Weeks of history ending with the current week (default: 12)
    --seed N             Random seed for reproducible output
    --keep               Append to existing data instead of resetting it first
    --verbose            Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from specvelocity import JsonFileStateStore, VelocityAggregator, VelocityConfig  # noqa: E402

_SPEC_IDS = ("user-authentication", "dashboard-ui", "api-integration", "data-migration", "testing-suite")

_TASK_DESCRIPTIONS = (
    "Implement login functionality",
    "Add user authentication",
    "Create dashboard layout",
    "Integrate API endpoints",
    "Write unit tests",
    "Update documentation",
    "Fix bug in validation",
    "Optimize database queries",
    "Add error handling",
    "Refactor component structure",
)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate mock velocity history.")
    parser.add_argument("--state-dir", type=Path, default=None)
    parser.add_argument("--weeks", type=int, default=12)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--keep", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


async def _generate(args: argparse.Namespace) -> int:
    overrides = {"state_dir": args.state_dir} if args.state_dir is not None else {}
    config = VelocityConfig.from_env(**overrides)
    rng = random.Random(args.seed)
    now = datetime.now(UTC)
    this_monday = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)

    store = JsonFileStateStore(config.state_dir, key=config.state_key)
    recorded = 0
    async with VelocityAggregator(store, config=config) as aggregator:
        if not args.keep:
            await aggregator.reset()

        progress = {spec_id: 0 for spec_id in _SPEC_IDS}
        totals = {spec_id: rng.randint(15, 40) for spec_id in _SPEC_IDS}

        for week in range(args.weeks - 1, -1, -1):
            monday = this_monday - timedelta(weeks=week)
            # more recent weeks get a little more activity
            recency_boost = (args.weeks - week) // 3
            for day in range(7):
                date = monday + timedelta(days=day)
                if date > now:
                    break
                for task in range(rng.randint(0, 3) + (recency_boost if day < 5 else 0) // 2):
                    spec_id = rng.choice(_SPEC_IDS)
                    if progress[spec_id] >= totals[spec_id]:
                        continue
                    timestamp = date + timedelta(hours=9 + rng.randint(0, 7), minutes=rng.randint(0, 59))
                    if timestamp > now:
                        continue
                    await aggregator.record_task_completion(
                        spec_id,
                        f"task-{week}-{day}-{task}",
                        is_required=rng.random() < 0.7,
                        timestamp=timestamp,
                        task_description=rng.choice(_TASK_DESCRIPTIONS),
                    )
                    progress[spec_id] += 1
                    recorded += 1
                    await aggregator.update_spec_progress(
                        spec_id, totals[spec_id], progress[spec_id], timestamp=timestamp
                    )

        metrics = aggregator.calculate_metrics()

    print(f"Recorded {recorded} task completions into {store.path}")
    print(f"Tasks per week: {metrics.tasks_per_week}")
    print(f"Specs per week: {metrics.specs_per_week}")
    print(f"Average velocity: {metrics.average_velocity} ({metrics.consistency_rating} consistency)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_generate(args))


if __name__ == "__main__":
    raise SystemExit(main())
