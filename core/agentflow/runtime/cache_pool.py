"""
Cache Pool - per-flow caches shared across runs.

Holds three independent in-memory namespaces:
- LLM response caches, keyed by flow id
- Embedding caches, keyed by flow id
- MCP toolkit instances, keyed by an arbitrary cache key

MCP toolkits hold live connections and cannot be shared between worker
processes, so that namespace is disabled in queue mode. Eviction is left to
the caller.
"""

import asyncio
import logging
from typing import Any

from agentflow.config import get_mode

logger = logging.getLogger(__name__)


class CachePool:
    """
    Async get/set access to the flow caches.

    Example:
        pool = CachePool()
        await pool.add_llm_cache("flow-1", {})
        cache = await pool.get_llm_cache("flow-1")
    """

    def __init__(self, mode: str | None = None):
        """
        Args:
            mode: Deployment mode ("main" or "queue"). Read from configuration
                on every call when not given.
        """
        self._mode = mode
        self._llm_cache: dict[str, Any] = {}
        self._embedding_cache: dict[str, Any] = {}
        self._mcp_cache: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    @property
    def is_queue_mode(self) -> bool:
        return (self._mode or get_mode()) == "queue"

    # === LLM CACHE ===

    async def add_llm_cache(self, flow_id: str, cache: Any) -> None:
        async with self._lock:
            self._llm_cache[flow_id] = cache

    async def get_llm_cache(self, flow_id: str) -> Any | None:
        return self._llm_cache.get(flow_id)

    # === EMBEDDING CACHE ===

    async def add_embedding_cache(self, flow_id: str, cache: Any) -> None:
        async with self._lock:
            self._embedding_cache[flow_id] = cache

    async def get_embedding_cache(self, flow_id: str) -> Any | None:
        return self._embedding_cache.get(flow_id)

    # === MCP TOOLKIT CACHE ===

    async def add_mcp_cache(self, cache_key: str, toolkit: Any) -> None:
        """Store a toolkit; ignored in queue mode."""
        if self.is_queue_mode:
            logger.debug(f"MCP cache disabled in queue mode, not storing '{cache_key}'")
            return
        async with self._lock:
            self._mcp_cache[cache_key] = toolkit

    async def get_mcp_cache(self, cache_key: str) -> Any | None:
        if self.is_queue_mode:
            return None
        return self._mcp_cache.get(cache_key)

    async def delete_mcp_cache(self, cache_key: str) -> None:
        async with self._lock:
            self._mcp_cache.pop(cache_key, None)

    # === LIFECYCLE ===

    def get_stats(self) -> dict:
        return {
            "llm_caches": len(self._llm_cache),
            "embedding_caches": len(self._embedding_cache),
            "mcp_toolkits": len(self._mcp_cache),
        }

    async def close(self) -> None:
        """Drop every cached entry."""
        async with self._lock:
            self._llm_cache.clear()
            self._embedding_cache.clear()
            self._mcp_cache.clear()
        logger.debug("Cache pool closed")
