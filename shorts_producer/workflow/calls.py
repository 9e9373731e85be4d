"""
Gateway call wrapper shared by the controllers.
"""

import logging
from dataclasses import replace
from typing import Awaitable, TypeVar

from .store import WorkflowStore
from ..core.exceptions import CredentialRequired, FetchFailure, ProducerError
from ..core.security import redact_api_key

logger = logging.getLogger(__name__)

R = TypeVar("R")


async def invoke(store: WorkflowStore, operation: str, call: Awaitable[R]) -> R:
    """
    Await one gateway call.

    Producer errors propagate unchanged; a ``CredentialRequired`` also raises
    the aggregate's ``needs_credential`` flag. Anything else the gateway lets
    escape is reported as a ``FetchFailure``.
    """
    try:
        return await call
    except CredentialRequired as e:
        logger.warning(f"{operation} needs a credential: {e.message}")
        store.update(lambda s: replace(s, needs_credential=True), reason=f"{operation} credential")
        raise
    except ProducerError as e:
        logger.warning(f"{operation} failed: {redact_api_key(e.message)}")
        raise
    except Exception as e:
        logger.error(f"{operation} failed unexpectedly: {redact_api_key(str(e))}")
        raise FetchFailure(f"{operation} failed: {redact_api_key(str(e))}", operation=operation) from e
