"""Directory discovery across the federation network.

The catalog asks every active partner instance for the directories it
advertises and merges the answers. A partner that errors, times out or
returns garbage is skipped: one partner's outage never fails discovery.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from launchpad_federation.core.errors import PartnerUnavailableError, ValidationError
from launchpad_federation.core.settings import settings
from launchpad_federation.db.time import parse_timestamp
from launchpad_federation.models import FederationInstance
from launchpad_federation.models.federation import INSTANCE_STATUS_ACTIVE
from launchpad_federation.services.cost import Money
from launchpad_federation.services.partner_client import PartnerClient, get_partner_client
from launchpad_federation.services.registry import PartnerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteDirectory:
    """A publishing target advertised by a partner instance."""

    instance_id: int
    instance_name: str
    instance_url: str
    directory_id: str
    name: str
    category: str | None
    fee: Money
    description: str | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.instance_url, self.directory_id)


def parse_directory(instance: FederationInstance, raw: Mapping[str, Any]) -> RemoteDirectory:
    """Convert one raw listing entry into a RemoteDirectory."""
    directory_id = raw.get("id")
    if directory_id in (None, ""):
        raise ValidationError("Directory entry is missing an id")

    return RemoteDirectory(
        instance_id=instance.id,
        instance_name=instance.name,
        instance_url=instance.base_url,
        directory_id=str(directory_id),
        name=str(raw.get("name") or directory_id),
        category=raw.get("category"),
        fee=Money.parse(raw.get("fee"), settings.default_currency),
        description=raw.get("description"),
        updated_at=parse_timestamp(raw.get("updated_at")),
    )


class _ListingCache:
    """Short-lived per-instance cache of parsed directory listings."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, list[RemoteDirectory]]] = {}

    def get(self, instance_url: str, ttl: float) -> list[RemoteDirectory] | None:
        entry = self._entries.get(instance_url)
        if entry is None or ttl <= 0:
            return None
        stored_at, directories = entry
        if time.monotonic() - stored_at > ttl:
            self._entries.pop(instance_url, None)
            return None
        return directories

    def put(self, instance_url: str, directories: list[RemoteDirectory]) -> None:
        self._entries[instance_url] = (time.monotonic(), directories)

    def clear(self) -> None:
        self._entries.clear()


_listing_cache = _ListingCache()


def clear_discovery_cache() -> None:
    """Drop every cached partner listing."""
    _listing_cache.clear()


class DirectoryCatalog:
    """Discover directories advertised by active partner instances."""

    def __init__(
        self,
        registry: PartnerRegistry,
        client: PartnerClient | None = None,
        *,
        cache: _ListingCache | None = None,
    ) -> None:
        self.registry = registry
        self.client = client or get_partner_client()
        self.cache = cache if cache is not None else _listing_cache

    async def _fetch_instance(self, instance: FederationInstance) -> list[RemoteDirectory]:
        cached = self.cache.get(instance.base_url, settings.discovery_cache_seconds)
        if cached is not None:
            return cached

        raw_listing = await self.client.list_directories(instance.base_url)
        directories: list[RemoteDirectory] = []
        for raw in raw_listing:
            try:
                directories.append(parse_directory(instance, raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed directory from %s: %s", instance.name, exc)
        self.cache.put(instance.base_url, directories)
        return directories

    async def discover(
        self,
        category: str | None = None,
        limit: int | None = None,
        deadline: float | None = None,
    ) -> list[RemoteDirectory]:
        """Return the merged directory listings of all active instances.

        Args:
            category: Only keep directories in this category.
            limit: Maximum number of directories to return.
            deadline: Seconds the whole call may take; instances still
                pending afterwards are treated as unavailable.
        """
        instances = self.registry.list_known(status=INSTANCE_STATUS_ACTIVE)
        if not instances:
            return []

        semaphore = asyncio.Semaphore(max(1, settings.discovery_concurrency))

        async def _bounded(instance: FederationInstance) -> list[RemoteDirectory]:
            async with semaphore:
                return await self._fetch_instance(instance)

        tasks = [asyncio.create_task(_bounded(instance)) for instance in instances]
        timeout = deadline if deadline is not None else settings.discovery_deadline_seconds
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        merged: list[RemoteDirectory] = []
        for instance, task in zip(instances, tasks, strict=True):
            if task in pending:
                logger.warning("Discovery deadline hit before %s answered", instance.name)
                continue
            exc = task.exception()
            if exc is not None:
                if isinstance(exc, PartnerUnavailableError):
                    logger.warning(
                        "Failed to fetch directories from %s: %s", instance.name, exc
                    )
                else:
                    logger.error(
                        "Unexpected error fetching directories from %s",
                        instance.name,
                        exc_info=exc,
                    )
                continue
            merged.extend(task.result())

        if category:
            merged = [directory for directory in merged if directory.category == category]
        if limit is not None and limit > 0:
            merged = merged[:limit]
        return merged
