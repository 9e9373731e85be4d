"""
Tests for the production streams.
"""

import pytest

from shorts_producer.core.config import Config, ProductionConfig
from shorts_producer.core.exceptions import FetchFailure, MissingArtifact, PreconditionError
from shorts_producer.workflow.models import Stage, TaskStatus
from shorts_producer.workflow.orchestrator import SegmentOrchestrator
from shorts_producer.workflow.producer import ShortsProducer
from shorts_producer.workflow.store import WorkflowStore


def scene_prompt(number):
    return lambda reference, prompt: prompt == f"scene {number} prompt"


class TestProductionRun:
    async def test_everything_terminal(self, producer, drive):
        state = await drive.production(producer)
        package = state.script_package

        assert package.narration.is_success
        assert package.thumbnail.is_success
        assert all(segment.image.is_success for segment in package.segments)
        assert all(segment.motion is None for segment in package.segments)

    async def test_scenes_run_in_order(self, producer, gateway, drive):
        await drive.production(producer)

        prompts = [args[1] for name, args in gateway.calls if name == "generate_scene_image"]
        assert prompts == [f"scene {i} prompt" for i in range(1, 11)]

    async def test_scenes_use_selected_reference(self, producer, gateway, drive):
        state = await drive.production(producer)

        references = {args[0] for name, args in gateway.calls if name == "generate_scene_image"}
        assert references == {state.selected_reference.binary}

    async def test_summary(self, producer, gateway, drive):
        gateway.fail("generate_scene_image", FetchFailure("blocked"), when=scene_prompt(7))
        await drive.production(producer)

        summary = await producer.wait_for_production()

        assert summary.scenes_succeeded == 9
        assert summary.scenes_failed == 1
        assert summary.scenes_pending == 0
        assert summary.narration is TaskStatus.SUCCESS


class TestIsolation:
    async def test_segment_seven_fails_alone(self, producer, gateway, drive):
        gateway.fail("generate_scene_image", FetchFailure("safety filter"), when=scene_prompt(7))

        state = await drive.production(producer)
        segments = state.script_package.segments

        assert segments[6].image.is_error
        assert segments[6].image.error_message == "safety filter"
        assert all(s.image.is_success for i, s in enumerate(segments) if i != 6)
        assert state.script_package.narration.is_success
        assert state.script_package.thumbnail.is_success

    async def test_missing_artifact_contained(self, producer, gateway, drive):
        gateway.fail("generate_thumbnail", MissingArtifact("No thumbnail in response", artifact="thumbnail"))

        state = await drive.production(producer)

        assert state.script_package.thumbnail.is_error
        assert all(s.image.is_success for s in state.script_package.segments)

    async def test_narration_failure_does_not_stop_scenes(self, producer, gateway, drive):
        gateway.fail("generate_narration", FetchFailure("tts down"))

        state = await drive.production(producer)

        assert state.script_package.narration.is_error
        assert all(s.image.is_success for s in state.script_package.segments)


class TestStaleCompletions:
    async def test_late_orchestrator_result_is_dropped(self, producer, gateway, drive):
        release = gateway.hold("generate_scene_image", when=scene_prompt(1))
        variants = await drive.references(producer)
        run = await producer.select_reference(variants[0])
        await gateway.wait_for_call("generate_scene_image")

        segment_id = producer.state.script_package.segments[0].id
        regenerated = await producer.regenerate_scene(segment_id)
        release.set()
        await run

        segment = producer.state.script_package.segments[0]
        assert segment.image == regenerated
        assert gateway.count("generate_scene_image") == 11


class TestConcurrency:
    async def test_parallel_scene_workers(self, gateway, drive):
        settings = ProductionConfig(scene_concurrency=3)
        producer = ShortsProducer(config=Config(production=settings), gateway=gateway)

        state = await drive.production(producer)

        assert all(s.image.is_success for s in state.script_package.segments)
        assert gateway.count("generate_scene_image") == 10


class TestLifecycle:
    async def test_start_requires_production(self, gateway):
        orchestrator = SegmentOrchestrator(WorkflowStore(), gateway)
        with pytest.raises(PreconditionError):
            orchestrator.start()

    async def test_restart_cancels_run(self, producer, gateway, drive):
        gateway.hold("generate_scene_image", when=scene_prompt(2))
        variants = await drive.references(producer)
        run = await producer.select_reference(variants[0])
        await gateway.wait_for_call("generate_scene_image", number=2)

        await producer.restart()

        assert run.cancelled()
        assert not producer.orchestrator.running
        assert producer.stage is Stage.NEWS
        assert gateway.count("generate_scene_image") == 2

    async def test_start_twice_rejected(self, producer, gateway, drive):
        release = gateway.hold("generate_scene_image")
        variants = await drive.references(producer)
        await producer.select_reference(variants[0])

        with pytest.raises(PreconditionError):
            producer.orchestrator.start()

        release.set()
        await producer.wait_for_production()
