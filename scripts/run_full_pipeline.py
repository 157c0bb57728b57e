"""
CLI example to submit one story and run the StoryGem pipeline end-to-end in-process.

Usage:
    python scripts/run_full_pipeline.py \
        --profile kid_profile.yaml \
        --photo example_images/lily.jpg \
        --owner local-dev
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict

import yaml
from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storygem import JobStatus, StoryGemSettings, build_context  # noqa: E402
from storygem.common.errors import IntakeValidationError  # noqa: E402
from storygem.intake import PhotoUpload  # noqa: E402


class ProgressTracker:
    """
    Provides user-friendly command-line progress updates for one story job.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "job:processing":
                self._write(f"[1/5] Job {payload.get('job_id')} is processing...")
            case "narrative:generating":
                self._write("[2/5] Writing the story...")
            case "narrative:ready":
                total = payload.get("total_pages", 0)
                self._write(f"[2/5] Story written ({total} pages). Illustrating...")
                self._page_bar = tqdm(total=total, desc="Illustrated pages", unit="page")
            case "illustration:done":
                if self._page_bar is not None:
                    self._page_bar.update(1)
            case "illustrations:ready":
                self.close()
                self._write("[3/5] All illustrations ready.")
            case "document:rendering":
                self._write("[4/5] Rendering the storybook PDF...")
            case "artifact:uploading":
                size = payload.get("size")
                self._write(f"[5/5] Uploading storybook ({size} bytes)...")
            case "job:complete":
                self._write(f"Done: {payload.get('artifact_url')}")
            case "job:failed":
                self.close()
                self._write(f"Failed: {payload.get('error_summary')}")

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full StoryGem generation pipeline.")
    parser.add_argument(
        "--profile",
        required=True,
        help="Path to a YAML/JSON file with childName, age, gender, genre, short_description.",
    )
    parser.add_argument(
        "--photo",
        required=True,
        help="Path to the child's reference photo (JPEG, PNG, or WEBP).",
    )
    parser.add_argument(
        "--owner",
        default="local-dev",
        help="Owner id recorded on the job (default: local-dev).",
    )
    parser.add_argument(
        "--summary",
        default=None,
        help="Optional path to write the finished job record as YAML.",
    )
    return parser.parse_args()


def load_profile_mapping(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported profile file format. Use YAML or JSON.")

    if not isinstance(data, dict):
        raise ValueError("Profile file must deserialize to a mapping.")
    return data


async def run(args: argparse.Namespace) -> int:
    settings = StoryGemSettings.from_env()
    logging.basicConfig(level=settings.log_level)

    tracker = ProgressTracker()
    context = build_context(settings, progress_callback=tracker)

    photo_path = Path(args.photo).expanduser()
    photo = PhotoUpload(
        filename=photo_path.name,
        content_type=mimetypes.guess_type(photo_path.name)[0],
        data=photo_path.read_bytes(),
    )
    profile = load_profile_mapping(Path(args.profile))

    try:
        job = await context.intake.submit(args.owner, profile, photo)
    except IntakeValidationError as exc:
        for field_name, problem in exc.fields.items():
            print(f"  {field_name}: {problem}", file=sys.stderr)
        return 2

    tqdm.write(f"Created job {job.id} ({job.status.value}).")
    try:
        finished = await context.orchestrator.run(job.id)
    finally:
        tracker.close()

    if args.summary:
        summary_path = Path(args.summary)
        summary_path.write_text(
            yaml.safe_dump(finished.to_dict(), sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        print(f"Saved job record to {summary_path}")

    return 0 if finished.status is JobStatus.COMPLETE else 1


def main() -> int:
    return asyncio.run(run(parse_args()))


if __name__ == "__main__":
    raise SystemExit(main())
