"""
Per-session abort tokens.

A chat session owns one token per running flow. API handlers look the token
up by session key and abort it; the executor and long-running node
executors observe it.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


def session_key(flow_id: str, chat_id: str) -> str:
    """Key under which a chat session's token is registered."""
    return f"{flow_id}_chat_{chat_id}"


class AbortToken:
    """One-shot cancellation signal.

    Example:
        token = AbortToken()
        ...
        if token.aborted:
            return
        await token.wait()  # resolves once abort() is called
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str | None = None) -> None:
        """Signal cancellation. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason or "Aborted"
        self._event.set()

    async def wait(self) -> str | None:
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        return f"AbortToken(aborted={self.aborted}, reason={self._reason!r})"


class AbortRegistry:
    """In-memory map from session key to abort token."""

    def __init__(self) -> None:
        self._tokens: dict[str, AbortToken] = {}

    def add(self, key: str, token: AbortToken) -> None:
        self._tokens[key] = token

    def get(self, key: str) -> AbortToken | None:
        return self._tokens.get(key)

    def remove(self, key: str) -> None:
        self._tokens.pop(key, None)

    def abort(self, key: str, reason: str | None = None) -> None:
        """Abort and forget the token for ``key``; unknown keys are ignored."""
        token = self._tokens.pop(key, None)
        if token is None:
            return
        logger.info(f"⛔ Aborting session {key}")
        token.abort(reason)

    def __contains__(self, key: object) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
