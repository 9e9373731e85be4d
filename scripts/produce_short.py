#!/usr/bin/env python3
"""
CLI Script: Produce Short
=========================

Command-line tool that runs a whole production non-interactively: scan the
news, pick a story and an angle, anchor the style, generate every asset and
export the bundle.

Usage:
    python scripts/produce_short.py
    python scripts/produce_short.py --news 2 --idea 1 --reference 3 -o ./output
    python scripts/produce_short.py --reference-file refs/style.png --animate 1 4
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shorts_producer import (
    Config,
    CredentialRequired,
    ProducerError,
    ShortsProducer,
    load_reference_file,
)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Produce a short-form video package from trending news",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --news 2 --idea 3 --reference 1
  %(prog)s --reference-file refs/style.png --animate 1 2 3
        """,
    )

    # Selections (1-based, as listed)
    parser.add_argument(
        "-n", "--news",
        type=int,
        default=1,
        help="News item to use (default: 1)",
    )
    parser.add_argument(
        "-i", "--idea",
        type=int,
        default=1,
        help="Ideation option to use (default: 1)",
    )
    parser.add_argument(
        "-r", "--reference",
        type=int,
        default=1,
        help="Generated reference variant to use (default: 1)",
    )
    parser.add_argument(
        "--reference-file",
        help="Use an image file as the style reference instead of a generated variant",
    )

    # Motion
    parser.add_argument(
        "--animate",
        type=int,
        nargs="+",
        default=[],
        metavar="SCENE",
        help="Scene numbers to animate after the stills are done",
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Directory for the bundle (default: output.base_path from config)",
    )

    # Config
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args()


def pick(items, number: int, label: str):
    """Return the 1-based ``number``-th item or exit with a message."""
    if not 1 <= number <= len(items):
        print(f"Error: {label} {number} out of range (1-{len(items)})")
        sys.exit(1)
    return items[number - 1]


async def main():
    """Main CLI entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = Config.load(args.config)
    if not (config.gateway.api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")):
        print("Error: GEMINI_API_KEY environment variable not set")
        print("Get your key at: https://aistudio.google.com/apikey")
        sys.exit(1)

    print("=" * 50)
    print("Shorts Producer")
    print("=" * 50)

    try:
        async with ShortsProducer(config) as producer:
            news = await producer.enter_news()
            for number, item in enumerate(news, 1):
                print(f"  {number}. {item.title}")
            story = pick(news, args.news, "News item")
            print(f"\nStory: {story.title}")

            ideas = await producer.select_news(story)
            for number, option in enumerate(ideas, 1):
                print(f"  {number}. {option.title}")
            idea = pick(ideas, args.idea, "Idea")
            print(f"\nAngle: {idea.title}")

            package = await producer.select_idea(idea)
            print(f"Script: {package.title} ({len(package.segments)} segments)")

            if args.reference_file:
                reference = load_reference_file(args.reference_file)
                print(f"Reference: {args.reference_file}")
            else:
                variants = await producer.request_reference_variants()
                reference = pick(variants, args.reference, "Reference variant")
                print(f"Reference: variant {args.reference} of {len(variants)}")

            await producer.select_reference(reference)
            print("\nGenerating narration, thumbnail and scenes...")
            summary = await producer.wait_for_production()
            print(f"Scenes: {summary.scenes_succeeded} ok, {summary.scenes_failed} failed")

            segments = producer.state.script_package.segments
            for number in args.animate:
                segment = pick(segments, number, "Scene")
                print(f"Animating scene {number}...")
                outcome = await producer.animate_scene(segment.id)
                print(f"  {outcome.status.value}" + (f": {outcome.error_message}" if outcome.is_error else ""))

            path = await producer.export_bundle(args.output)

            print("\n" + "-" * 50)
            print(f"Bundle saved: {path}")
            print("=" * 50)

            sys.exit(0 if summary.scenes_failed == 0 else 1)

    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
    except CredentialRequired as e:
        print(f"\nError: {e.message}")
        print(e.remediation)
        sys.exit(1)
    except ProducerError as e:
        print(f"\nError: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
