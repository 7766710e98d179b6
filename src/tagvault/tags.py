"""Tag registry — the authoritative set of knowledge tags, kept in a Redis set.

``ensure()`` relies on SADD, which is idempotent and atomic on the server, so
concurrent ingest requests adding the same tag leave exactly one member.
Cache failures are raised as InfrastructureError: a tag that silently fails to
register leaves its ingested chunks unreachable from the tag list.
"""

from __future__ import annotations

import logging
from typing import Any

import redis

from tagvault.errors import InfrastructureError, ValidationError

logger = logging.getLogger(__name__)

MAX_TAG_LENGTH = 32


def validate_tag(tag: str | None) -> str:
    """Return *tag* stripped, or raise ValidationError if it is blank or too long."""
    cleaned = (tag or "").strip()
    if not cleaned:
        raise ValidationError("Knowledge tag must not be empty")
    if len(cleaned) > MAX_TAG_LENGTH:
        raise ValidationError(
            f"Knowledge tag must be at most {MAX_TAG_LENGTH} characters, got {len(cleaned)}"
        )
    return cleaned


class TagRegistry:
    """Set-valued cache entry listing every known knowledge tag.

    Args:
        client: A ``redis.Redis`` client created with ``decode_responses=True``.
        key: Redis key of the tag set.
    """

    def __init__(self, client: Any, key: str = "ai:rag:tags") -> None:
        self._client = client
        self._key = key

    @classmethod
    def from_url(cls, url: str, key: str = "ai:rag:tags") -> "TagRegistry":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        return cls(client, key)

    @property
    def key(self) -> str:
        return self._key

    def list(self) -> set[str]:
        """Return every registered tag."""
        logger.info("BIZ_BEGIN: op=queryTags, key=%s", self._key)
        try:
            members = self._client.smembers(self._key)
        except redis.RedisError as exc:
            logger.error("BIZ_ERROR: op=queryTags, key=%s", self._key, exc_info=True)
            raise InfrastructureError(
                f"Redis read failed: {exc}", operation="queryTags", target=self._key
            ) from exc
        tags = {m.decode() if isinstance(m, bytes) else str(m) for m in members}
        logger.info("BIZ_END: op=queryTags, size=%d", len(tags))
        return tags

    def ensure(self, tag: str) -> bool:
        """Add *tag* if absent. Returns True when the tag was newly added."""
        tag = validate_tag(tag)
        try:
            added = self._client.sadd(self._key, tag)
        except redis.RedisError as exc:
            logger.error("BIZ_ERROR: op=updateTag, tag=%s, key=%s", tag, self._key, exc_info=True)
            raise InfrastructureError(
                f"Redis write failed: {exc}", operation="updateTag", target=self._key
            ) from exc
        if added:
            logger.info("BIZ_INFO: op=updateTag, action=add, tag=%s", tag)
        else:
            logger.info("BIZ_INFO: op=updateTag, action=exists, tag=%s", tag)
        return bool(added)
