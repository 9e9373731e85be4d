"""
Base Generation Gateway
=======================

Abstract base class for generative-content services, with shared client
management, binary fetching and status normalization.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Sequence

import httpx

from ..core.exceptions import FetchFailure, ValidationError
from ..core.security import redact_api_key
from ..utils.media import extension_for

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 300
MAX_REDIRECTS = 5


# =============================================================================
# Data Classes
# =============================================================================


class JobStatus(Enum):
    """Status of a long-running generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BinaryRef:
    """
    A generated binary artifact.

    Either carried inline (``data``) or addressed remotely (``uri``); remote
    refs are resolved through ``GenerationGateway.fetch_binary`` and may expire.
    """

    mime_type: str
    data: Optional[bytes] = field(default=None, repr=False)
    uri: Optional[str] = None

    def __post_init__(self):
        if (self.data is None) == (self.uri is None):
            raise ValidationError(
                "BinaryRef needs exactly one of data or uri",
                field="data",
                constraint="exactly one of data/uri",
            )

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    @property
    def extension(self) -> str:
        return extension_for(self.mime_type)


@dataclass
class MotionJob:
    """Handle for an asynchronous scene-motion job."""

    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    result: Optional[BinaryRef] = None
    error_message: Optional[str] = None


# =============================================================================
# Base Gateway Class
# =============================================================================


class GenerationGateway(ABC):
    """
    Abstract generation gateway.

    One coroutine per artifact kind. Text operations return the decoded JSON
    payload; callers validate its shape before building domain records.
    Binary operations return ``BinaryRef`` and raise ``MissingArtifact`` when
    the service reports success without a payload.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the gateway.

        Args:
            api_key: API key (or read from environment)
            base_url: Base URL for the API
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or self._get_api_key_from_env()
        self.base_url = base_url or self._get_default_base_url()
        self.timeout = timeout

        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

        self._validate_config()

    # -------------------------------------------------------------------------
    # Abstract Methods
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @property
    @abstractmethod
    def env_key_names(self) -> Sequence[str]:
        """Environment variables consulted for the API key, in order."""

    @property
    def credential_headers(self) -> Sequence[str]:
        """Request headers that carry the credential."""
        return ("Authorization",)

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Return the default base URL for this provider."""

    @abstractmethod
    async def fetch_news(self) -> List[Dict[str, Any]]:
        """Trending news items: ``{title, snippet, source_url}``."""

    @abstractmethod
    async def generate_ideas(self, title: str, snippet: str) -> List[Dict[str, Any]]:
        """Narrative angles for a news item: ``{title, description}``."""

    @abstractmethod
    async def generate_script(self, idea_title: str, idea_description: str) -> Dict[str, Any]:
        """Raw script package payload."""

    @abstractmethod
    async def generate_reference_variant(self, prompt: str, variation: int = 0) -> BinaryRef:
        """One style reference image; ``variation`` nudges the service toward diversity."""

    @abstractmethod
    async def generate_thumbnail(self, prompt: str) -> BinaryRef:
        """One thumbnail image."""

    @abstractmethod
    async def generate_narration(self, text: str) -> BinaryRef:
        """One narration audio track."""

    @abstractmethod
    async def generate_scene_image(self, reference: BinaryRef, prompt: str) -> BinaryRef:
        """One scene still, anchored on the reference image."""

    @abstractmethod
    async def submit_scene_motion(self, image: BinaryRef, prompt: str) -> MotionJob:
        """Start a motion job seeded by a scene still."""

    @abstractmethod
    async def check_motion(self, job: MotionJob) -> MotionJob:
        """Refresh a motion job's status."""

    # -------------------------------------------------------------------------
    # Shared Implementation Methods
    # -------------------------------------------------------------------------

    async def generate_reference_variants(self, prompt: str, count: int = 4) -> List[BinaryRef]:
        """
        Style reference variants for the whole production.

        One request per variant; the image models return a single candidate.
        """
        return [await self.generate_reference_variant(prompt, i) for i in range(count)]

    async def fetch_binary(self, ref: BinaryRef) -> bytes:
        """
        Resolve a binary ref to bytes.

        Redirects are followed by hand so the credential headers only ever
        reach the gateway's own host.

        Raises:
            FetchFailure: If a remote ref cannot be downloaded (e.g. expired)
        """
        if ref.is_inline:
            return ref.data

        client = await self._get_client()
        trusted_host = httpx.URL(self.base_url).host
        url = httpx.URL(ref.uri)
        try:
            for _ in range(MAX_REDIRECTS + 1):
                request = client.build_request("GET", url)
                if url.host != trusted_host:
                    for name in self.credential_headers:
                        request.headers.pop(name, None)
                response = await client.send(request)
                if not response.has_redirect_location:
                    break
                url = url.join(response.headers["location"])
            else:
                raise FetchFailure(
                    f"Download exceeded {MAX_REDIRECTS} redirects",
                    operation="fetch_binary",
                )
        except httpx.HTTPError as e:
            raise FetchFailure(
                f"Download failed: {redact_api_key(str(e))}",
                operation="fetch_binary",
            )

        if response.status_code != 200:
            raise FetchFailure(
                f"Download failed with status {response.status_code}",
                operation="fetch_binary",
                status_code=response.status_code,
            )
        return response.content

    def has_credential(self) -> bool:
        """Whether a credential is configured."""
        return bool(self.api_key)

    async def set_api_key(self, api_key: str) -> None:
        """Replace the credential; the HTTP client is rebuilt on next use."""
        await self.close()
        self.api_key = api_key

    def _get_api_key_from_env(self) -> Optional[str]:
        """Get API key from environment variables."""
        for name in self.env_key_names:
            value = os.getenv(name)
            if value:
                return value
        return None

    def _validate_config(self) -> None:
        """Validate the gateway configuration."""
        if not self.api_key:
            logger.warning(
                f"No API key found for {self.provider_name}. "
                f"Set {' or '.join(self.env_key_names)} or pass api_key parameter."
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    headers=self._get_headers(),
                )
            return self._client

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        async with self._client_lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
