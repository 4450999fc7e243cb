import asyncio
import logging

import aiohttp

from .config import RelayConfig
from .protocol import RelayResult, build_url, parse_response, transport_error


class RequestDispatcher:
    """Issues one GET per payload against the WatchDog server."""

    def __init__(self, config: RelayConfig):
        self.config = config
        self.log = logging.getLogger("Dispatcher")

    async def fetch(self, payload: str) -> RelayResult:
        url = build_url(self.config, payload)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        self.log.debug(f"GET {url}")

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    body = await response.read()
                    if response.status >= 400:
                        self.log.warning(f"Server returned {response.status} for {url.path}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.log.error(f"Request to {url} failed: {e!r}")
            return transport_error()

        result = parse_response(body)
        self.log.info(f"✓ {url.path} -> {result.outcome.value}: {result.message}")
        return result
