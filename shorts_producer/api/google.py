"""
Google Gemini Gateway
=====================

Direct integration with the Gemini API (``generativelanguage.googleapis.com``)
for every artifact the producer needs:

- Grounded news search and structured text (JSON response schemas)
- Reference, thumbnail and scene images (image response modality)
- Narration (TTS; raw PCM wrapped into WAV)
- Scene motion via Veo long-running operations
"""

import base64
import json
import logging
from dataclasses import replace
from typing import Optional, List, Dict, Any, Sequence

import httpx

from .base import GenerationGateway, BinaryRef, MotionJob, JobStatus
from .factory import register_gateway
from ..core.config import GatewayConfig
from ..core.exceptions import (
    CredentialRequired,
    FetchFailure,
    MalformedResponse,
    MissingArtifact,
    RateLimitError,
)
from ..core.security import redact_api_key, sanitize_prompt
from ..utils.media import base_mime, pcm_sample_rate, pcm_to_wav

logger = logging.getLogger(__name__)


# =============================================================================
# Response Schemas
# =============================================================================


NEWS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "snippet": {"type": "STRING"},
            "url": {"type": "STRING"},
        },
        "required": ["title", "snippet", "url"],
    },
}

IDEAS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "description": {"type": "STRING"},
        },
        "required": ["title", "description"],
    },
}

SCRIPT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "description": {"type": "STRING"},
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "callToAction": {"type": "STRING"},
        "thumbnailPrompt": {"type": "STRING"},
        "mainReferencePrompt": {"type": "STRING"},
        "fullNarrationText": {"type": "STRING"},
        "segments": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "timeOffset": {"type": "STRING"},
                    "narrationText": {"type": "STRING"},
                    "imagePrompt": {"type": "STRING"},
                },
                "required": ["timeOffset", "narrationText", "imagePrompt"],
            },
        },
    },
    "required": [
        "title", "description", "tags", "callToAction", "thumbnailPrompt",
        "mainReferencePrompt", "fullNarrationText", "segments",
    ],
}

# Wire field name -> gateway contract field name
SCRIPT_FIELDS = {
    "callToAction": "call_to_action",
    "thumbnailPrompt": "thumbnail_prompt",
    "mainReferencePrompt": "main_reference_prompt",
    "fullNarrationText": "full_narration_text",
}
SEGMENT_FIELDS = {
    "timeOffset": "time_offset",
    "narrationText": "narration_text",
    "imagePrompt": "image_prompt",
}


def _rename(data: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    return {mapping.get(key, key): value for key, value in data.items()}


def _decode_base64(value: Any, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Invalid base64 in {field}: {e}", field=field, constraint="base64")


@register_gateway("google")
class GeminiGateway(GenerationGateway):
    """
    Gemini / Veo generation gateway.

    The API key travels in the ``x-goog-api-key`` header; 401/403 responses
    and a missing key surface as ``CredentialRequired``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = 300,
        settings: Optional[GatewayConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or GatewayConfig()
        self._transport = transport
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout)

    @property
    def provider_name(self) -> str:
        return "Google Gemini"

    @property
    def env_key_names(self) -> Sequence[str]:
        return ("GEMINI_API_KEY", "GOOGLE_API_KEY")

    @property
    def credential_headers(self) -> Sequence[str]:
        return ("x-goog-api-key",)

    def _get_default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com/v1beta"

    def _get_headers(self) -> Dict[str, str]:
        """Gemini takes the key in its own header, not as a bearer token."""
        return {
            "x-goog-api-key": self.api_key or "",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    headers=self._get_headers(),
                    transport=self._transport,
                )
            return self._client

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    async def fetch_news(self) -> List[Dict[str, Any]]:
        data = await self._generate_json(
            self.settings.news_model,
            "Find the top 5 most trending and interesting tech news stories from the last 24 hours. "
            "Focus on things that would make good viral videos.",
            NEWS_SCHEMA,
            operation="fetch_news",
            grounded=True,
        )
        if not isinstance(data, list):
            raise MalformedResponse("News response is not a list", field="news", operation="fetch_news")
        return [
            _rename(item, {"url": "source_url"}) if isinstance(item, dict) else item
            for item in data
        ]

    async def generate_ideas(self, title: str, snippet: str) -> List[Dict[str, Any]]:
        return await self._generate_json(
            self.settings.text_model,
            f'Based on this news: "{title}" - {snippet}, generate 3 distinct and highly viral '
            "YouTube Shorts content ideas. Make them punchy and attention-grabbing.",
            IDEAS_SCHEMA,
            operation="generate_ideas",
        )

    async def generate_script(self, idea_title: str, idea_description: str) -> Dict[str, Any]:
        data = await self._generate_json(
            self.settings.text_model,
            f'Create a complete 30-second YouTube Shorts script for the idea: "{idea_title}" '
            f"({idea_description}).\n"
            "Break it down into exactly 10 segments of 3 seconds each.\n"
            "Provide a viral title, description, a call to action and a list of 15 viral tags.\n"
            'Create a "fullNarrationText" which is the entire script as a single continuous paragraph.\n'
            'Provide a "mainReferencePrompt" for visual consistency.\n'
            'Provide a "thumbnailPrompt" for a high-impact YouTube thumbnail (16:9).',
            SCRIPT_SCHEMA,
            operation="generate_script",
        )
        if not isinstance(data, dict):
            raise MalformedResponse("Script response is not an object", field="script", operation="generate_script")

        script = _rename(data, SCRIPT_FIELDS)
        if isinstance(script.get("segments"), list):
            script["segments"] = [
                _rename(segment, SEGMENT_FIELDS) if isinstance(segment, dict) else segment
                for segment in script["segments"]
            ]
        return script

    # -------------------------------------------------------------------------
    # Images and Audio
    # -------------------------------------------------------------------------

    async def generate_reference_variant(self, prompt: str, variation: int = 0) -> BinaryRef:
        return await self._generate_image(
            self.settings.image_model,
            [{"text": f"Generate a high-quality cinematic reference image for a YouTube Short: {prompt}. "
                      f"Variation {variation}. Style: Cinematic, 4K, professional photography."}],
            self.settings.scene_aspect_ratio,
            artifact=f"reference variant {variation}",
        )

    async def generate_thumbnail(self, prompt: str) -> BinaryRef:
        return await self._generate_image(
            self.settings.thumbnail_model,
            [{"text": f"High impact YouTube thumbnail: {prompt}. Style: Vibrant, high-contrast, "
                      "attention-grabbing, 4K resolution. Including bold text elements if appropriate."}],
            self.settings.thumbnail_aspect_ratio,
            artifact="thumbnail",
        )

    async def generate_scene_image(self, reference: BinaryRef, prompt: str) -> BinaryRef:
        reference_bytes = await self.fetch_binary(reference)
        return await self._generate_image(
            self.settings.image_model,
            [
                {"inlineData": {
                    "mimeType": base_mime(reference.mime_type),
                    "data": base64.b64encode(reference_bytes).decode("utf-8"),
                }},
                {"text": f"Based on the reference image provided, generate a new image for this scene: "
                         f"{prompt}. Maintain character/style consistency."},
            ],
            self.settings.scene_aspect_ratio,
            artifact="scene image",
        )

    async def generate_narration(self, text: str) -> BinaryRef:
        payload = {
            "contents": [{"parts": [{"text": f"Say in an energetic, engaging voice: {sanitize_prompt(text)}"}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.settings.voice}},
                },
            },
        }
        data = await self._post(
            f"models/{self.settings.tts_model}:generateContent", payload, operation="generate_narration",
        )
        audio = self._first_inline(data, artifact="narration")

        # TTS returns headerless 16-bit PCM
        if base_mime(audio.mime_type) == "audio/l16":
            wav = pcm_to_wav(audio.data, sample_rate=pcm_sample_rate(audio.mime_type))
            return BinaryRef(mime_type="audio/wav", data=wav)
        return audio

    # -------------------------------------------------------------------------
    # Motion (Veo)
    # -------------------------------------------------------------------------

    async def submit_scene_motion(self, image: BinaryRef, prompt: str) -> MotionJob:
        image_bytes = await self.fetch_binary(image)
        payload = {
            "instances": [{
                "prompt": sanitize_prompt(prompt),
                "image": {
                    "bytesBase64Encoded": base64.b64encode(image_bytes).decode("utf-8"),
                    "mimeType": base_mime(image.mime_type),
                },
            }],
            "parameters": {
                "aspectRatio": self.settings.scene_aspect_ratio,
            },
        }

        data = await self._post(
            f"models/{self.settings.motion_model}:predictLongRunning", payload, operation="submit_scene_motion",
        )
        if not data.get("name"):
            raise MalformedResponse("No operation name in response", field="name", operation="submit_scene_motion")

        logger.info(f"Submitted motion job {data['name']}")
        return MotionJob(job_id=data["name"])

    async def check_motion(self, job: MotionJob) -> MotionJob:
        client = await self._get_client()
        try:
            response = await client.get(f"{self.base_url}/{job.job_id}")
        except httpx.HTTPError as e:
            raise FetchFailure(f"Poll failed: {redact_api_key(str(e))}", operation="check_motion")
        self._raise_for_status(response, "check_motion")
        data = self._decode(response, "check_motion")

        if not data.get("done"):
            return replace(job, status=JobStatus.PROCESSING)

        if "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            return replace(job, status=JobStatus.FAILED, error_message=str(message or "Unknown error"))

        video = self._parse_video(data.get("response") or {})
        if video is None:
            return replace(job, status=JobStatus.FAILED, error_message="No video in response")
        return replace(job, status=JobStatus.COMPLETED, result=video)

    @staticmethod
    def _parse_video(data: Dict[str, Any]) -> Optional[BinaryRef]:
        """Pull the first video out of a finished Veo operation."""
        samples = (
            (data.get("generateVideoResponse") or {}).get("generatedSamples")
            or data.get("generatedVideos")
            or []
        )
        for sample in samples:
            video = sample.get("video") or {}
            mime_type = video.get("mimeType") or "video/mp4"
            if video.get("uri"):
                return BinaryRef(mime_type=mime_type, uri=video["uri"])
            if video.get("bytesBase64Encoded"):
                data = _decode_base64(video["bytesBase64Encoded"], "video.bytesBase64Encoded")
                return BinaryRef(mime_type=mime_type, data=data)
        return None

    # -------------------------------------------------------------------------
    # Request Helpers
    # -------------------------------------------------------------------------

    async def _generate_json(
        self,
        model: str,
        prompt: str,
        schema: Dict[str, Any],
        operation: str,
        grounded: bool = False,
    ) -> Any:
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": sanitize_prompt(prompt)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        if grounded:
            payload["tools"] = [{"google_search": {}}]

        data = await self._post(f"models/{model}:generateContent", payload, operation=operation)
        text = "".join(part.get("text", "") for part in self._parts(data))
        try:
            return json.loads(text or "null")
        except json.JSONDecodeError as e:
            logger.error(f"{operation}: response is not valid JSON: {e}")
            raise MalformedResponse(f"Response is not valid JSON: {e}", field="text", operation=operation)

    async def _generate_image(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        aspect_ratio: str,
        artifact: str,
    ) -> BinaryRef:
        for part in parts:
            if "text" in part:
                part["text"] = sanitize_prompt(part["text"])
        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio},
            },
        }
        data = await self._post(f"models/{model}:generateContent", payload, operation=f"generate {artifact}")
        return self._first_inline(data, artifact=artifact)

    async def _post(self, path: str, payload: Dict[str, Any], operation: str) -> Dict[str, Any]:
        if not self.api_key:
            raise CredentialRequired(
                f"{self.provider_name} API key is not configured",
                operation=operation,
                remediation=f"Set {' or '.join(self.env_key_names)} and try again.",
            )

        client = await self._get_client()
        logger.debug(f"POST {path} ({operation})")
        try:
            response = await client.post(f"{self.base_url}/{path}", json=payload)
        except httpx.HTTPError as e:
            raise FetchFailure(f"{operation} failed: {redact_api_key(str(e))}", operation=operation)

        self._raise_for_status(response, operation)
        return self._decode(response, operation)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.status_code in (401, 403):
            raise CredentialRequired(
                f"{operation} was refused by {self.provider_name} ({response.status_code})",
                operation=operation,
            )
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"{operation} was rate limited",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                operation=operation,
            )
        if response.status_code >= 400:
            raise FetchFailure(
                f"{operation} failed with status {response.status_code}",
                operation=operation,
                status_code=response.status_code,
                response_body=redact_api_key(response.text),
            )

    @staticmethod
    def _decode(response: httpx.Response, operation: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise MalformedResponse("Response body is not JSON", operation=operation)
        if not isinstance(data, dict):
            raise MalformedResponse("Response body is not an object", operation=operation)
        return data

    @staticmethod
    def _parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        return (candidates[0].get("content") or {}).get("parts") or []

    def _first_inline(self, data: Dict[str, Any], artifact: str) -> BinaryRef:
        for part in self._parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                return BinaryRef(
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    data=_decode_base64(inline["data"], "inlineData.data"),
                )
        raise MissingArtifact(f"No {artifact} in response", artifact=artifact)
