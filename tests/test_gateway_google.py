"""
Tests for the Gemini REST mapping, using httpx.MockTransport.
"""

import base64
import json

import httpx
import pytest

from shorts_producer.api import get_gateway, list_gateways
from shorts_producer.api.base import BinaryRef, JobStatus, MotionJob
from shorts_producer.api.google import GeminiGateway
from shorts_producer.core.exceptions import (
    ConfigurationError,
    CredentialRequired,
    FetchFailure,
    MalformedResponse,
    MissingArtifact,
    RateLimitError,
)


def text_response(payload) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def inline_response(data: bytes, mime_type: str) -> dict:
    return {"candidates": [{"content": {"parts": [
        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode()}},
    ]}}]}


class Recorder:
    """Mock transport handler that answers with canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_gateway(recorder: Recorder, api_key="AIzaTestKey") -> GeminiGateway:
    return GeminiGateway(api_key=api_key, transport=httpx.MockTransport(recorder))


class TestText:
    async def test_fetch_news_is_grounded(self):
        recorder = Recorder(text_response([
            {"title": "Chips", "snippet": "Faster chips", "url": "https://news.test/chips"},
        ]))
        gateway = make_gateway(recorder)

        news = await gateway.fetch_news()

        assert news == [{"title": "Chips", "snippet": "Faster chips", "source_url": "https://news.test/chips"}]
        request = recorder.requests[0]
        assert request.headers["x-goog-api-key"] == "AIzaTestKey"
        assert request.url.path.endswith("models/gemini-3-flash-preview:generateContent")
        assert recorder.body()["tools"] == [{"google_search": {}}]
        await gateway.close()

    async def test_script_fields_renamed(self):
        recorder = Recorder(text_response({
            "title": "T", "description": "D", "tags": ["a"], "callToAction": "Follow",
            "thumbnailPrompt": "thumb", "mainReferencePrompt": "ref", "fullNarrationText": "all",
            "segments": [{"timeOffset": "0:00", "narrationText": "n", "imagePrompt": "p"}],
        }))
        gateway = make_gateway(recorder)

        script = await gateway.generate_script("Idea", "Angle")

        assert script["call_to_action"] == "Follow"
        assert script["main_reference_prompt"] == "ref"
        assert script["segments"] == [{"time_offset": "0:00", "narration_text": "n", "image_prompt": "p"}]
        schema = recorder.body()["generationConfig"]["responseSchema"]
        assert "segments" in schema["properties"]
        await gateway.close()

    async def test_invalid_json(self):
        recorder = Recorder({"candidates": [{"content": {"parts": [{"text": "not json"}]}}]})
        gateway = make_gateway(recorder)

        with pytest.raises(MalformedResponse):
            await gateway.generate_ideas("t", "s")
        await gateway.close()


class TestBinary:
    async def test_thumbnail_inline_image(self):
        recorder = Recorder(inline_response(b"png-bytes", "image/png"))
        gateway = make_gateway(recorder)

        ref = await gateway.generate_thumbnail("a robot")

        assert ref == BinaryRef(mime_type="image/png", data=b"png-bytes")
        config = recorder.body()["generationConfig"]
        assert config["responseModalities"] == ["IMAGE"]
        assert config["imageConfig"]["aspectRatio"] == "16:9"
        await gateway.close()

    async def test_no_image_is_missing_artifact(self):
        recorder = Recorder({"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]})
        gateway = make_gateway(recorder)

        with pytest.raises(MissingArtifact):
            await gateway.generate_thumbnail("a robot")
        await gateway.close()

    async def test_scene_image_sends_reference(self):
        recorder = Recorder(inline_response(b"scene", "image/png"))
        gateway = make_gateway(recorder)
        reference = BinaryRef(mime_type="image/jpeg", data=b"ref-bytes")

        await gateway.generate_scene_image(reference, "city at night")

        parts = recorder.body()["contents"][0]["parts"]
        assert parts[0]["inlineData"] == {
            "mimeType": "image/jpeg",
            "data": base64.b64encode(b"ref-bytes").decode(),
        }
        assert "city at night" in parts[1]["text"]
        await gateway.close()

    async def test_narration_wrapped_as_wav(self):
        pcm = b"\x00\x01" * 100
        recorder = Recorder(inline_response(pcm, "audio/L16;codec=pcm;rate=24000"))
        gateway = make_gateway(recorder)

        ref = await gateway.generate_narration("Hello there")

        assert ref.mime_type == "audio/wav"
        assert ref.data.startswith(b"RIFF")
        assert ref.data.endswith(pcm)
        assert recorder.body()["generationConfig"]["responseModalities"] == ["AUDIO"]
        await gateway.close()


class TestMotion:
    async def test_submit_and_poll(self):
        recorder = Recorder(
            {"name": "models/veo/operations/op1"},
            {"name": "models/veo/operations/op1", "done": False},
            {"name": "models/veo/operations/op1", "done": True, "response": {
                "generateVideoResponse": {"generatedSamples": [
                    {"video": {"uri": "https://files.test/video.mp4"}},
                ]},
            }},
        )
        gateway = make_gateway(recorder)

        job = await gateway.submit_scene_motion(BinaryRef(mime_type="image/png", data=b"frame"), "pan left")
        assert job.job_id == "models/veo/operations/op1"
        assert recorder.requests[0].url.path.endswith(":predictLongRunning")

        job = await gateway.check_motion(job)
        assert job.status is JobStatus.PROCESSING

        job = await gateway.check_motion(job)
        assert job.status is JobStatus.COMPLETED
        assert job.result == BinaryRef(mime_type="video/mp4", uri="https://files.test/video.mp4")
        assert recorder.requests[2].url.path.endswith("/models/veo/operations/op1")
        await gateway.close()

    async def test_operation_error(self):
        recorder = Recorder({"done": True, "error": {"code": 3, "message": "unsafe prompt"}})
        gateway = make_gateway(recorder)

        job = await gateway.check_motion(MotionJob(job_id="operations/x"))

        assert job.status is JobStatus.FAILED
        assert job.error_message == "unsafe prompt"
        await gateway.close()

    async def test_operation_error_as_string(self):
        recorder = Recorder({"done": True, "error": "quota exhausted"})
        gateway = make_gateway(recorder)

        job = await gateway.check_motion(MotionJob(job_id="operations/x"))

        assert job.status is JobStatus.FAILED
        assert job.error_message == "quota exhausted"
        await gateway.close()

    async def test_bad_inline_video(self):
        recorder = Recorder({"done": True, "response": {"generateVideoResponse": {"generatedSamples": [
            {"video": {"bytesBase64Encoded": "not*base64"}},
        ]}}})
        gateway = make_gateway(recorder)

        with pytest.raises(MalformedResponse):
            await gateway.check_motion(MotionJob(job_id="operations/x"))
        await gateway.close()

    async def test_missing_operation_name(self):
        recorder = Recorder({})
        gateway = make_gateway(recorder)

        with pytest.raises(MalformedResponse):
            await gateway.submit_scene_motion(BinaryRef(mime_type="image/png", data=b"f"), "p")
        await gateway.close()


class TestErrors:
    async def test_forbidden_is_credential_required(self):
        recorder = Recorder(httpx.Response(403, json={"error": {"message": "billing"}}))
        gateway = make_gateway(recorder)

        with pytest.raises(CredentialRequired):
            await gateway.generate_thumbnail("x")
        await gateway.close()

    async def test_rate_limit(self):
        recorder = Recorder(httpx.Response(429, headers={"retry-after": "30"}, json={}))
        gateway = make_gateway(recorder)

        with pytest.raises(RateLimitError) as exc_info:
            await gateway.fetch_news()
        assert exc_info.value.details["retry_after_seconds"] == 30
        await gateway.close()

    async def test_server_error_redacted(self):
        recorder = Recorder(httpx.Response(500, text="upstream https://api.test/v1?key=secret-value failed"))
        gateway = make_gateway(recorder)

        with pytest.raises(FetchFailure) as exc_info:
            await gateway.generate_ideas("t", "s")
        assert exc_info.value.details["status_code"] == 500
        assert "secret-value" not in exc_info.value.details["response_body"]
        await gateway.close()

    async def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        recorder = Recorder()
        gateway = make_gateway(recorder, api_key=None)

        with pytest.raises(CredentialRequired):
            await gateway.fetch_news()
        assert recorder.requests == []
        assert gateway.has_credential() is False

    async def test_expired_download(self):
        recorder = Recorder(httpx.Response(404))
        gateway = make_gateway(recorder)

        with pytest.raises(FetchFailure):
            await gateway.fetch_binary(BinaryRef(mime_type="video/mp4", uri="https://files.test/old.mp4"))
        await gateway.close()


class TestDownload:
    async def test_key_not_forwarded_across_hosts(self):
        recorder = Recorder(
            httpx.Response(302, headers={"location": "https://storage.test/clip.mp4"}),
            httpx.Response(200, content=b"clip-bytes"),
        )
        gateway = make_gateway(recorder)
        ref = BinaryRef(
            mime_type="video/mp4",
            uri="https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media",
        )

        data = await gateway.fetch_binary(ref)

        assert data == b"clip-bytes"
        first, second = recorder.requests
        assert first.headers["x-goog-api-key"] == "AIzaTestKey"
        assert second.url.host == "storage.test"
        assert "x-goog-api-key" not in second.headers
        await gateway.close()

    async def test_redirect_loop(self):
        recorder = Recorder(*[
            httpx.Response(302, headers={"location": "https://storage.test/again"}) for _ in range(7)
        ])
        gateway = make_gateway(recorder)

        with pytest.raises(FetchFailure):
            await gateway.fetch_binary(BinaryRef(mime_type="video/mp4", uri="https://storage.test/start"))
        await gateway.close()


class TestFactory:
    def test_google_registered(self):
        assert "google" in list_gateways()

    def test_unknown_gateway(self):
        with pytest.raises(ConfigurationError):
            get_gateway("nope")

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "AIzaFromEnv")

        gateway = get_gateway("google")

        assert gateway.api_key == "AIzaFromEnv"
