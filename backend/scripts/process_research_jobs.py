#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json

from dealflow.config import configure_logging
from dealflow.models import EntityKind
from dealflow.workers.tasks import run_research_batch


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one batch of queued research jobs and print the report.")
    parser.add_argument("--max-jobs", type=int, default=5)
    parser.add_argument("--kind", choices=[kind.value for kind in EntityKind], default=None)
    args = parser.parse_args()

    if args.max_jobs < 1:
        parser.error("--max-jobs must be a positive integer")

    configure_logging()
    report = asyncio.run(run_research_batch(args.max_jobs, args.kind))
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
