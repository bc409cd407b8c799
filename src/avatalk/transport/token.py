"""Access token retrieval for the avatar transport."""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from ..config import get_config
from ..exceptions import TokenError
from ..logging_config import setup_logger

logger = setup_logger("avatalk.token")


class BaseTokenProvider(ABC):
    """Base class for credential sources."""

    @abstractmethod
    async def get_token(self) -> str:
        """Return an opaque access token."""
        pass


class HttpTokenProvider(BaseTokenProvider):
    """Fetches a token with ``POST`` from the access-token endpoint."""

    def __init__(self, url: Optional[str] = None, timeout_s: float = 10.0):
        self.url = url or get_config().avatar.token_url
        self.timeout_s = timeout_s

    async def get_token(self) -> str:
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url) as response:
                    token = await response.text()
                    if response.status != 200:
                        logger.error(f"Token endpoint error: {response.status} - {token}")
                        raise TokenError(f"Token endpoint error: {response.status}")
        except TokenError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error fetching access token: {e}")
            raise TokenError(f"Token request failed: {e}") from e

        token = token.strip()
        if not token:
            raise TokenError("Token endpoint returned an empty token")
        logger.debug("Access token received")
        return token


class StaticTokenProvider(BaseTokenProvider):
    """Returns a fixed token (tests, local development)."""

    def __init__(self, token: str = "mock-token", fail: bool = False):
        self.token = token
        self.fail = fail

    async def get_token(self) -> str:
        if self.fail:
            raise TokenError("Static token provider configured to fail")
        return self.token
