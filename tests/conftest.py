"""
Pytest configuration and fixtures for Shorts Producer tests.

``FakeGateway`` is an in-memory, scriptable stand-in for the generation
service: every call is recorded, any operation can be told to fail, and
individual calls can be held open until a test releases them.
"""

import asyncio
import io
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from PIL import Image

from shorts_producer.api.base import BinaryRef, GenerationGateway, JobStatus, MotionJob
from shorts_producer.core.config import Config, ProductionConfig
from shorts_producer.core.exceptions import FetchFailure
from shorts_producer.workflow.producer import ShortsProducer


def make_png(color=(200, 40, 40), size=(8, 8)) -> bytes:
    """Small real PNG for upload tests."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_script(segment_count: int = 10) -> Dict[str, Any]:
    """Script payload in the gateway contract shape."""
    return {
        "title": "AI Beats  Chess!",
        "description": "A new model just changed the game.",
        "tags": [f"tag{i}" for i in range(15)],
        "call_to_action": "Follow for more",
        "thumbnail_prompt": "robot hand moving a chess piece",
        "main_reference_prompt": "neon chess board, cinematic",
        "full_narration_text": "It finally happened. " * 5,
        "segments": [
            {
                "time_offset": f"0:{i * 3:02d}",
                "narration_text": f"line {i + 1}",
                "image_prompt": f"scene {i + 1} prompt",
            }
            for i in range(segment_count)
        ],
    }


class FakeGateway(GenerationGateway):
    """Scriptable in-memory gateway."""

    def __init__(self, api_key: Optional[str] = "test-key", **kwargs):
        super().__init__(api_key=api_key, base_url="memory://", timeout=5)
        self.calls: List[tuple] = []
        self.news = [
            {"title": f"Story {i}", "snippet": f"Snippet {i}", "source_url": f"https://news.test/{i}"}
            for i in range(1, 4)
        ]
        self.ideas = [
            {"title": f"Angle {i}", "description": f"Take {i}"}
            for i in range(1, 4)
        ]
        self.script = make_script()
        self.remote: Dict[str, bytes] = {}
        self.motion_statuses: deque = deque()
        self.motion_forever = False

        self._failures: List[Dict[str, Any]] = []
        self._holds: List[Dict[str, Any]] = []
        self._counter = 0

    @property
    def provider_name(self) -> str:
        return "Fake"

    @property
    def env_key_names(self) -> Sequence[str]:
        return ("FAKE_API_KEY",)

    def _get_default_base_url(self) -> str:
        return "memory://"

    # -------------------------------------------------------------------------
    # Scripting
    # -------------------------------------------------------------------------

    def fail(self, operation: str, error: Exception, when: Optional[Callable[..., bool]] = None) -> None:
        """Make matching calls of ``operation`` raise ``error``."""
        self._failures.append({"operation": operation, "error": error, "when": when})

    def clear_failures(self) -> None:
        self._failures.clear()

    def hold(self, operation: str, when: Optional[Callable[..., bool]] = None, times: int = 1) -> asyncio.Event:
        """Block the next ``times`` matching calls until the returned event is set."""
        event = asyncio.Event()
        self._holds.append({"operation": operation, "when": when, "event": event, "left": times})
        return event

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def wait_for_call(self, operation: str, number: int = 1) -> None:
        for _ in range(200):
            if self.count(operation) >= number:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"{operation} was never called")

    async def _step(self, operation: str, *args) -> None:
        self.calls.append((operation, args))

        for hold in self._holds:
            if hold["operation"] == operation and hold["left"] > 0 and (hold["when"] is None or hold["when"](*args)):
                hold["left"] -= 1
                await hold["event"].wait()
                break

        for failure in self._failures:
            if failure["operation"] == operation and (failure["when"] is None or failure["when"](*args)):
                raise failure["error"]

    def _binary(self, label: str, mime_type: str = "image/png") -> BinaryRef:
        self._counter += 1
        return BinaryRef(mime_type=mime_type, data=f"{label}:{self._counter}".encode())

    # -------------------------------------------------------------------------
    # Gateway operations
    # -------------------------------------------------------------------------

    async def fetch_news(self):
        await self._step("fetch_news")
        return [dict(item) for item in self.news]

    async def generate_ideas(self, title, snippet):
        await self._step("generate_ideas", title, snippet)
        return [dict(item) for item in self.ideas]

    async def generate_script(self, idea_title, idea_description):
        await self._step("generate_script", idea_title, idea_description)
        return self.script

    async def generate_reference_variant(self, prompt, variation=0):
        await self._step("generate_reference_variant", prompt, variation)
        return self._binary(f"reference-{variation}")

    async def generate_thumbnail(self, prompt):
        await self._step("generate_thumbnail", prompt)
        return self._binary("thumbnail")

    async def generate_narration(self, text):
        await self._step("generate_narration", text)
        return self._binary("narration", mime_type="audio/wav")

    async def generate_scene_image(self, reference, prompt):
        await self._step("generate_scene_image", reference, prompt)
        return self._binary(prompt)

    async def submit_scene_motion(self, image, prompt):
        await self._step("submit_scene_motion", image, prompt)
        self._counter += 1
        return MotionJob(job_id=f"operations/{self._counter}")

    async def check_motion(self, job):
        await self._step("check_motion", job)
        if self.motion_statuses:
            status = self.motion_statuses.popleft()
        elif self.motion_forever:
            status = JobStatus.PROCESSING
        else:
            status = JobStatus.COMPLETED

        if isinstance(status, Exception):
            raise status
        if status is JobStatus.COMPLETED:
            return MotionJob(job.job_id, status, result=self._binary("motion", mime_type="video/mp4"))
        if status is JobStatus.FAILED:
            return MotionJob(job.job_id, status, error_message="render failed")
        return MotionJob(job.job_id, status)

    async def fetch_binary(self, ref):
        if ref.data is not None:
            return ref.data
        if ref.uri in self.remote:
            return self.remote[ref.uri]
        raise FetchFailure(f"Download failed: {ref.uri} expired", operation="fetch_binary", status_code=404)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def gateway():
    """Fresh scriptable gateway."""
    return FakeGateway()


@pytest.fixture
def settings():
    """Production settings with fast motion polling."""
    return ProductionConfig(motion_poll_interval=0.01, motion_max_wait=0.2)


@pytest.fixture
def producer(gateway, settings):
    """Producer wired to the fake gateway."""
    return ShortsProducer(config=Config(production=settings), gateway=gateway)


@pytest.fixture
def png_bytes():
    return make_png()


async def drive_to_script(producer: ShortsProducer):
    news = await producer.enter_news()
    ideas = await producer.select_news(news[0])
    return await producer.select_idea(ideas[0])


async def drive_to_references(producer: ShortsProducer):
    await drive_to_script(producer)
    return await producer.request_reference_variants()


async def drive_to_production(producer: ShortsProducer, reference=None):
    variants = await drive_to_references(producer)
    await producer.select_reference(reference or variants[0])
    await producer.wait_for_production()
    return producer.state


@pytest.fixture
def drive():
    """Helpers that walk a producer through the stages."""

    class Drive:
        script = staticmethod(drive_to_script)
        references = staticmethod(drive_to_references)
        production = staticmethod(drive_to_production)

    return Drive
