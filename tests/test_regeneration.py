"""
Tests for targeted regeneration and scene motion.
"""

import asyncio

import pytest

from shorts_producer.api.base import JobStatus
from shorts_producer.core.config import Config, ProductionConfig
from shorts_producer.core.exceptions import CredentialRequired, FetchFailure, PreconditionError
from shorts_producer.workflow.producer import ShortsProducer


def scene_prompt(number):
    return lambda reference, prompt: prompt == f"scene {number} prompt"


class TestRegenerateScene:
    async def test_siblings_untouched(self, producer, drive):
        before = await drive.production(producer)
        target = before.script_package.segments[2]

        outcome = await producer.regenerate_scene(target.id)

        after = producer.state.script_package
        assert outcome.is_success
        assert after.segments[2].image == outcome
        assert after.segments[2].image.value != target.image.value
        for i, segment in enumerate(after.segments):
            if i != 2:
                assert segment == before.script_package.segments[i]
        assert after.narration == before.script_package.narration
        assert after.thumbnail == before.script_package.thumbnail

    async def test_failure_recorded_on_segment(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.fail("generate_scene_image", FetchFailure("still blocked"), when=scene_prompt(5))

        outcome = await producer.regenerate_scene(state.script_package.segments[4].id)

        assert outcome.is_error
        assert producer.state.script_package.segments[4].image.is_error
        assert producer.state.script_package.segments[3].image.is_success

    async def test_retry_recovers_failed_scene(self, producer, gateway, drive):
        gateway.fail("generate_scene_image", FetchFailure("blocked"), when=scene_prompt(7))
        state = await drive.production(producer)
        gateway.clear_failures()

        outcome = await producer.regenerate_scene(state.script_package.segments[6].id)

        assert outcome.is_success
        assert all(s.image.is_success for s in producer.state.script_package.segments)

    async def test_motion_cleared_before_image_call(self, producer, gateway, drive):
        state = await drive.production(producer)
        segment_id = state.script_package.segments[0].id
        await producer.animate_scene(segment_id)
        assert producer.state.script_package.segments[0].motion.is_success

        release = gateway.hold("generate_scene_image")
        pending = asyncio.create_task(producer.regenerate_scene(segment_id))
        await gateway.wait_for_call("generate_scene_image", number=11)

        segment = producer.state.script_package.segments[0]
        assert segment.motion is None
        assert segment.image.is_pending

        release.set()
        await pending
        assert producer.state.script_package.segments[0].motion is None

    async def test_unknown_segment(self, producer, drive):
        await drive.production(producer)
        with pytest.raises(PreconditionError):
            await producer.regenerate_scene("seg-missing")

    async def test_requires_reference(self, producer, drive):
        await drive.references(producer)
        segment_id = producer.state.script_package.segments[0].id
        with pytest.raises(PreconditionError):
            await producer.regenerate_scene(segment_id)


class TestPackageArtifacts:
    async def test_regenerate_thumbnail(self, producer, drive):
        before = await drive.production(producer)

        outcome = await producer.regenerate_thumbnail()

        after = producer.state.script_package
        assert after.thumbnail == outcome
        assert after.thumbnail.value != before.script_package.thumbnail.value
        assert after.segments == before.script_package.segments
        assert after.narration == before.script_package.narration

    async def test_regenerate_narration_failure(self, producer, gateway, drive):
        before = await drive.production(producer)
        gateway.fail("generate_narration", FetchFailure("tts down"))

        outcome = await producer.regenerate_narration()

        after = producer.state.script_package
        assert outcome.is_error
        assert after.narration.is_error
        assert after.thumbnail == before.script_package.thumbnail

    async def test_thumbnail_requires_production(self, producer, drive):
        await drive.references(producer)
        with pytest.raises(PreconditionError):
            await producer.regenerate_thumbnail()

    async def test_variant_requires_reference_selection(self, producer, drive):
        state = await drive.production(producer)
        with pytest.raises(PreconditionError):
            await producer.regenerate_reference_variant(state.reference_candidates[0].id)


class TestAnimateScene:
    async def test_success(self, producer, gateway, drive):
        state = await drive.production(producer)
        segment_id = state.script_package.segments[1].id
        gateway.motion_statuses.extend([JobStatus.PROCESSING, JobStatus.PROCESSING])

        outcome = await producer.animate_scene(segment_id)

        assert outcome.is_success
        assert outcome.value.mime_type == "video/mp4"
        assert producer.state.script_package.segments[1].motion == outcome
        assert gateway.count("check_motion") == 3

    async def test_requires_successful_image(self, producer, gateway, drive):
        gateway.fail("generate_scene_image", FetchFailure("blocked"), when=scene_prompt(4))
        state = await drive.production(producer)

        with pytest.raises(PreconditionError):
            await producer.animate_scene(state.script_package.segments[3].id)

        assert producer.state.script_package.segments[3].motion is None
        assert gateway.count("submit_scene_motion") == 0

    async def test_credential_check(self, gateway, settings, drive):
        producer = ShortsProducer(
            config=Config(production=settings),
            gateway=gateway,
            credential_check=lambda: False,
        )
        state = await drive.production(producer)

        with pytest.raises(CredentialRequired):
            await producer.animate_scene(state.script_package.segments[0].id)

        assert producer.state.needs_credential is True
        assert producer.state.script_package.segments[0].motion is None
        assert gateway.count("submit_scene_motion") == 0

    async def test_refused_by_service(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.fail("submit_scene_motion", CredentialRequired("billing required"))

        with pytest.raises(CredentialRequired):
            await producer.animate_scene(state.script_package.segments[0].id)

        assert producer.state.needs_credential is True
        assert producer.state.script_package.segments[0].motion is None

    async def test_job_failure_recorded(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.motion_statuses.extend([JobStatus.PROCESSING, JobStatus.FAILED])

        outcome = await producer.animate_scene(state.script_package.segments[0].id)

        assert outcome.is_error
        assert outcome.error_message == "render failed"
        assert producer.state.script_package.segments[0].image.is_success

    async def test_transient_poll_error_retried(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.motion_statuses.extend([FetchFailure("502"), JobStatus.COMPLETED])

        outcome = await producer.animate_scene(state.script_package.segments[0].id)

        assert outcome.is_success

    async def test_unexpected_poll_error_recorded(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.motion_statuses.append(ValueError("Incorrect padding"))

        outcome = await producer.animate_scene(state.script_package.segments[0].id)

        assert outcome.is_error
        assert "Incorrect padding" in outcome.error_message
        motion = producer.state.script_package.segments[0].motion
        assert motion.is_error
        assert motion == outcome

    async def test_timeout(self, producer, gateway, drive):
        state = await drive.production(producer)
        gateway.motion_forever = True

        outcome = await producer.animate_scene(state.script_package.segments[0].id)

        assert outcome.is_error
        assert "did not finish" in outcome.error_message
        assert producer.state.script_package.segments[0].motion.is_error

    async def test_regenerate_cancels_motion(self, gateway, drive):
        settings = ProductionConfig(motion_poll_interval=0.01, motion_max_wait=30)
        producer = ShortsProducer(config=Config(production=settings), gateway=gateway)
        state = await drive.production(producer)
        segment_id = state.script_package.segments[0].id
        gateway.motion_forever = True

        motion = producer.regeneration.start_animation(segment_id)
        await gateway.wait_for_call("check_motion")
        assert producer.state.script_package.segments[0].motion.is_pending

        outcome = await producer.regenerate_scene(segment_id)

        assert motion.cancelled()
        assert outcome.is_success
        assert producer.state.script_package.segments[0].motion is None

    async def test_restart_cancels_motion(self, gateway, drive):
        settings = ProductionConfig(motion_poll_interval=0.01, motion_max_wait=30)
        producer = ShortsProducer(config=Config(production=settings), gateway=gateway)
        state = await drive.production(producer)
        gateway.motion_forever = True

        motion = producer.regeneration.start_animation(state.script_package.segments[0].id)
        await gateway.wait_for_call("check_motion")
        await producer.restart()

        assert motion.cancelled()
        assert producer.state.script_package is None

    async def test_double_start_rejected(self, gateway, drive):
        settings = ProductionConfig(motion_poll_interval=0.01, motion_max_wait=30)
        producer = ShortsProducer(config=Config(production=settings), gateway=gateway)
        state = await drive.production(producer)
        segment_id = state.script_package.segments[0].id
        gateway.motion_forever = True

        producer.regeneration.start_animation(segment_id)
        with pytest.raises(PreconditionError):
            producer.regeneration.start_animation(segment_id)

        await producer.close()
