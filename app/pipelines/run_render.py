"""CLI entrypoint - render one request synchronously and print the asset URLs."""

import argparse
import json
import sys
import uuid
from pathlib import Path

from app.core.config import settings
from app.core.exceptions import RenderError
from app.core.logging_config import get_logger, setup_logging
from app.models.schemas import ALLOWED_DURATIONS, RenderRequest
from app.pipelines.render_pipeline import RenderPipeline
from app.services.plan_provider import StaticPlanProvider
from app.utils.error_handler import format_error_message, get_fallback_suggestion


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Timeline Render Service - render one video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--prompt",
        type=str,
        required=True,
        help="Free-form prompt handed to the plan provider",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        choices=list(ALLOWED_DURATIONS),
        help="Target duration in seconds (default: 30)",
    )
    parser.add_argument(
        "--style",
        type=str,
        default="cinematic",
        help="Visual style (default: cinematic)",
    )
    parser.add_argument(
        "--mode",
        type=str,
        default="story",
        help="Render mode passed to the plan provider (default: story)",
    )
    parser.add_argument(
        "--timeline",
        type=str,
        default=None,
        help="Use a timeline JSON file instead of calling the plan provider",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Write plan, segments and results as JSON into the job's work directory",
    )
    return parser


def main(argv=None) -> int:
    """Main entrypoint for a single render."""
    args = build_parser().parse_args(argv)

    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    job_id = f"job_{uuid.uuid4().hex[:12]}"
    logger = get_logger(__name__, job_id=job_id)

    logger.info("=" * 60)
    logger.info("Timeline Render Service - CLI render")
    logger.info(f"Duration: {args.duration}s | Style: {args.style} | Mode: {args.mode}")
    logger.info("=" * 60)

    plan_provider = None
    if args.timeline:
        with open(Path(args.timeline), "r", encoding="utf-8") as f:
            plan_provider = StaticPlanProvider(json.load(f))
        logger.info(f"Using timeline file: {args.timeline}")

    request = RenderRequest(
        prompt=args.prompt,
        duration=args.duration,
        visual_style=args.style,
        mode=args.mode,
        demo_mode=args.demo,
    )

    try:
        asset = RenderPipeline(settings, logger, plan_provider=plan_provider).run(job_id, request)
    except RenderError as e:
        logger.error(
            format_error_message("Render", e, context={"job_id": job_id}, suggestion=get_fallback_suggestion(e))
        )
        return 1

    print(f"Video: {asset.url}")
    if asset.manifest_url:
        print(f"HLS:   {asset.manifest_url}")
    if asset.dropped_segments:
        print(f"Dropped segments: {asset.dropped_segments}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
