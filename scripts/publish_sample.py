"""
Publish a finished story as a free sample that anyone can read without signing in.

Usage:
    python scripts/publish_sample.py <job_id>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storygem.common.errors import JobNotFoundError  # noqa: E402
from storygem.config import StoryGemSettings  # noqa: E402
from storygem.jobs import Job, YamlJobStore  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mark a complete StoryGem job as a public sample story."
    )
    parser.add_argument("job_id", help="Identifier of the complete job to publish.")
    return parser.parse_args()


async def publish(job_id: str, settings: StoryGemSettings) -> Job:
    store = YamlJobStore(settings.jobs_dir)
    return await store.update(job_id, Job.publish_as_sample)


def main() -> int:
    args = parse_args()
    settings = StoryGemSettings.from_env()
    logging.basicConfig(level=settings.log_level)

    try:
        job = asyncio.run(publish(args.job_id, settings))
    except JobNotFoundError as exc:
        print(exc, file=sys.stderr)
        return 2
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    print(f"Published '{job.inputs.display_title}' ({job.id}) as a free sample.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
