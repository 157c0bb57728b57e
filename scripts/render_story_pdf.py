"""
Render a StoryGem job record (YAML) into a printable PDF without re-running generation.

Usage:
    python scripts/render_story_pdf.py \
        --job storygem-data/jobs/<job_id>.yaml \
        --output storybook.pdf
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import yaml

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storygem.jobs import Job, JobStatus  # noqa: E402
from storygem.pdf_generation import PAGE_SIZES, IllustratedPage, StorybookPDFBuilder  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a completed StoryGem job record into a storybook PDF."
    )
    parser.add_argument(
        "--job",
        required=True,
        help="Path to the job record YAML (as written by the YAML job store).",
    )
    parser.add_argument(
        "--output",
        required=True,
        help="Destination PDF file path.",
    )
    parser.add_argument(
        "--page-size",
        choices=sorted(PAGE_SIZES.keys()),
        default="square",
        help="Page size to render (default: square).",
    )
    parser.add_argument(
        "--margin-mm",
        type=float,
        default=15.0,
        help="Page margin in millimetres (default: 15).",
    )
    parser.add_argument(
        "--font",
        default=None,
        help="Path to a TrueType font to embed for the narration.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for downloading illustration assets (default: 30).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    data = yaml.safe_load(Path(args.job).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        print("Job record must deserialize to a mapping.", file=sys.stderr)
        return 2

    job = Job.from_dict(data)
    if job.status is not JobStatus.COMPLETE:
        print(f"Job {job.id} is {job.status.value}; only complete jobs have pages.", file=sys.stderr)
        return 1

    builder = StorybookPDFBuilder(
        page_size=PAGE_SIZES[args.page_size],
        margin_mm=args.margin_mm,
        font_path=args.font,
        request_timeout=args.timeout,
    )
    pages = [
        IllustratedPage(
            page_number=page.page_number,
            narration=page.narration,
            image_url=page.illustration_url,
        )
        for page in job.pages
    ]
    builder.build(pages, args.output, title=job.inputs.display_title)

    print(f"Rendered storybook PDF to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
