"""
rewardhound/distribution/fetcher.py

Integrity-checked retrieval of claim-data files.

The claim distribution is split into shard files, each covering a range
of addresses. A shard is only handed to callers after the SHA-256 of its
bytes matches the hash pinned in configuration; otherwise IntegrityError
is raised and the bytes are discarded.
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import aiohttp

from ..config import DEFAULT_REQUEST_TIMEOUT, DistributionConfig, ShardSpec
from ..errors import FetchError, IntegrityError, NotEligible
from ..retry import RetryConfig, call_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustedDataFile:
    """Claim-data bytes whose content hash has been verified."""
    shard_id: str
    content: bytes
    content_hash: str


def content_hash(content: bytes) -> str:
    """SHA-256 of content as lower-case hex."""
    return hashlib.sha256(content).hexdigest()


def normalize_hash(value: str) -> str:
    value = value.strip().lower()
    return value[2:] if value.startswith("0x") else value


# ============================================================================
# DISTRIBUTION SOURCES
# ============================================================================

class DistributionSource(ABC):
    """Maps addresses to shards and downloads shard bytes."""

    @abstractmethod
    def locate(self, address: str) -> Optional[ShardSpec]:
        """Shard covering address, or None if no shard does."""
        pass

    @abstractmethod
    async def download(self, shard: ShardSpec) -> bytes:
        """
        Raw bytes of a shard file.

        Raises:
            FetchError: On network failure
        """
        pass


class ShardedDistributionSource(DistributionSource):
    """Locates shards by inclusive address range. Subclasses download."""

    def __init__(self, shards: List[ShardSpec]):
        self.shards = list(shards)

    def locate(self, address: str) -> Optional[ShardSpec]:
        for shard in self.shards:
            if shard.contains(address):
                return shard
        return None


class HttpDistributionSource(ShardedDistributionSource):
    """
    Downloads shard files over HTTP from {base_url}/{shard_id}.

    Usage:
        source = HttpDistributionSource.from_config(config.distribution)
        data = await source.download(source.locate(address))
    """

    def __init__(
        self,
        base_url: str,
        shards: List[ShardSpec],
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        super().__init__(shards)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: DistributionConfig) -> "HttpDistributionSource":
        return cls(
            base_url=config.base_url,
            shards=config.shards,
            timeout=config.request_timeout,
        )

    def url_for(self, shard: ShardSpec) -> str:
        return f"{self.base_url}/{shard.shard_id}"

    async def download(self, shard: ShardSpec) -> bytes:
        url = self.url_for(shard)
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise FetchError(f"GET {url} returned {response.status}")
                    return await response.read()
        except aiohttp.ClientError as e:
            raise FetchError(f"GET {url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(f"GET {url} timed out") from e


# ============================================================================
# INTEGRITY FETCHER
# ============================================================================

class IntegrityFetcher:
    """
    Fetches shard files and verifies them against pinned hashes.

    With caching enabled, verified files are kept per shard and concurrent
    requests for the same shard share a single download.
    """

    def __init__(
        self,
        source: DistributionSource,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry: Optional[RetryConfig] = None,
        cache_enabled: bool = True,
    ):
        self._source = source
        self._timeout = timeout
        self._retry = retry or RetryConfig()
        self._cache_enabled = cache_enabled

        self._cache: Dict[str, TrustedDataFile] = {}
        self._inflight: Dict[str, "asyncio.Future[TrustedDataFile]"] = {}

    @classmethod
    def from_config(
        cls,
        config: DistributionConfig,
        source: Optional[DistributionSource] = None,
    ) -> "IntegrityFetcher":
        return cls(
            source=source or HttpDistributionSource.from_config(config),
            timeout=config.request_timeout,
            retry=config.retry,
            cache_enabled=config.cache_enabled,
        )

    async def fetch_trusted(self, address: str) -> TrustedDataFile:
        """
        Get the verified claim-data file covering address.

        Raises:
            NotEligible: If no shard covers the address
            FetchError: If the download failed after retries
            IntegrityError: If the content hash does not match
        """
        shard = self._source.locate(address)
        if shard is None:
            logger.debug(f"No claim shard covers {address}")
            raise NotEligible(address)

        if not self._cache_enabled:
            return await self._fetch_shard(shard)

        cached = self._cache.get(shard.shard_id)
        if cached is not None:
            return cached

        pending = self._inflight.get(shard.shard_id)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_and_cache(shard))
            self._inflight[shard.shard_id] = pending
        # Shield so one cancelled caller does not cancel the shared download
        return await asyncio.shield(pending)

    async def _fetch_and_cache(self, shard: ShardSpec) -> TrustedDataFile:
        try:
            trusted = await self._fetch_shard(shard)
            self._cache[shard.shard_id] = trusted
            return trusted
        finally:
            self._inflight.pop(shard.shard_id, None)

    async def _fetch_shard(self, shard: ShardSpec) -> TrustedDataFile:
        content = await call_with_retry(
            lambda: self._source.download(shard),
            timeout=self._timeout,
            retry=self._retry,
            description=f"Claim shard {shard.shard_id} download",
        )

        actual = content_hash(content)
        expected = normalize_hash(shard.content_hash)
        if actual != expected:
            logger.error(
                f"Claim shard {shard.shard_id} failed integrity check: "
                f"expected {expected}, got {actual}"
            )
            raise IntegrityError(shard.shard_id, expected, actual)

        logger.debug(f"Claim shard {shard.shard_id} verified ({len(content)} bytes)")
        return TrustedDataFile(
            shard_id=shard.shard_id,
            content=content,
            content_hash=actual,
        )
