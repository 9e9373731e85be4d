#!/usr/bin/env python3
"""
Simple Production Example
=========================

Basic example of producing a short with the Shorts Producer, including a
targeted regeneration before export.
"""

import asyncio
import os
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from shorts_producer import ShortsProducer, ProducerError


async def main():
    """Simple end-to-end production example."""

    # Check for API key
    if not os.getenv("GEMINI_API_KEY"):
        print("Please set GEMINI_API_KEY environment variable")
        print("Get your key at: https://aistudio.google.com/apikey")
        return

    print("=== Simple Short Production ===")

    async with ShortsProducer() as producer:
        # Print every stage change as it is committed
        last_stage = [producer.stage]

        def on_commit(state, version):
            if state.stage is not last_stage[0]:
                last_stage[0] = state.stage
                print(f"  -> {state.stage.value} (v{version})")

        producer.subscribe(on_commit)

        try:
            news = await producer.enter_news()
            print(f"\nTop story: {news[0].title}")

            ideas = await producer.select_news(news[0])
            package = await producer.select_idea(ideas[0])
            print(f"Script: {package.title}")

            variants = await producer.request_reference_variants()
            await producer.select_reference(variants[0])

            summary = await producer.wait_for_production()
            print(f"\nScenes ok: {summary.scenes_succeeded}, failed: {summary.scenes_failed}")

            # Retry every failed scene once
            for segment in producer.state.script_package.segments:
                if segment.image is not None and segment.image.is_error:
                    print(f"Retrying scene {segment.number}: {segment.image.error_message}")
                    await producer.regenerate_scene(segment.id)

            path = await producer.export_bundle("./output")
            print(f"\nBundle: {path}")

        except ProducerError as e:
            print(f"\nError: {e.message}")


if __name__ == "__main__":
    asyncio.run(main())
