"""Partner registry: known federation instances and their health."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.orm import Session

from launchpad_federation.core.errors import (
    NotFoundError,
    PartnerUnavailableError,
    ValidationError,
)
from launchpad_federation.core.settings import settings
from launchpad_federation.db.time import utcnow
from launchpad_federation.models import FederationInstance
from launchpad_federation.models.federation import (
    INSTANCE_STATUS_ACTIVE,
    INSTANCE_STATUS_INACTIVE,
    INSTANCE_STATUS_UNVERIFIED,
    INSTANCE_STATUSES,
)
from launchpad_federation.services.partner_client import PartnerClient, get_partner_client

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_http_url(url: str | None) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc) and " " not in url


def normalize_base_url(url: str) -> str:
    return url.strip().rstrip("/")


@dataclass
class PingResult:
    """Outcome of a health check; failures are reported here, never raised."""

    instance_url: str
    healthy: bool = False
    compatible: bool = False
    federation_enabled: bool = False
    version: str | None = None
    api_version: str | None = None
    supported_features: list[str] = field(default_factory=list)
    error: str | None = None
    instance_id: int | None = None
    instance_name: str | None = None


class PartnerRegistry:
    """CRUD and health checks for FederationInstance rows."""

    def __init__(self, db: Session, client: PartnerClient | None = None) -> None:
        self.db = db
        self.client = client or get_partner_client()

    def register(self, data: Mapping[str, Any]) -> FederationInstance:
        """Validate and persist a new instance with status ``unverified``."""
        name = (data.get("name") or "").strip()
        base_url = data.get("base_url") or ""
        admin_email = (data.get("admin_email") or "").strip()

        if not name:
            raise ValidationError("Instance name is required")
        if not base_url:
            raise ValidationError("Instance base_url is required")
        if not admin_email:
            raise ValidationError("Admin email is required")
        if not is_valid_http_url(base_url.strip()):
            raise ValidationError("Invalid URL format for base_url")
        if not EMAIL_PATTERN.match(admin_email):
            raise ValidationError("Invalid email format for admin_email")

        base_url = normalize_base_url(base_url)
        existing = self.db.scalar(
            select(FederationInstance).where(FederationInstance.base_url == base_url)
        )
        if existing is not None:
            raise ValidationError(f"Instance already registered: {base_url}")

        instance = FederationInstance(
            name=name,
            base_url=base_url,
            description=data.get("description"),
            admin_email=admin_email,
            status=INSTANCE_STATUS_UNVERIFIED,
            last_seen_at=utcnow(),
        )
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        logger.info("Registered federation instance %s (%s)", instance.id, base_url)
        return instance

    def list_known(
        self, status: str | None = None, limit: int | None = None
    ) -> list[FederationInstance]:
        query = select(FederationInstance).order_by(
            FederationInstance.last_seen_at.desc(), FederationInstance.id
        )
        if status:
            query = query.where(FederationInstance.status == status)
        if limit:
            query = query.limit(limit)
        return list(self.db.scalars(query))

    def get(self, instance_id: int) -> FederationInstance:
        instance = self.db.get(FederationInstance, instance_id)
        if instance is None:
            raise NotFoundError(f"Federation instance {instance_id} not found")
        return instance

    def update_status(self, instance_id: int, status: str) -> FederationInstance:
        """Transition an instance's status and refresh its last-seen time."""
        if status not in INSTANCE_STATUSES:
            raise ValidationError(f"Invalid instance status: {status}")
        instance = self.get(instance_id)
        instance.status = status
        instance.last_seen_at = utcnow()
        self.db.commit()
        self.db.refresh(instance)
        return instance

    async def ping(self, instance: FederationInstance | str) -> PingResult:
        """Check an instance's health and federation compatibility."""
        if isinstance(instance, FederationInstance):
            result = PingResult(
                instance_url=instance.base_url,
                instance_id=instance.id,
                instance_name=instance.name,
            )
        else:
            result = PingResult(instance_url=normalize_base_url(instance))

        try:
            health = await self.client.fetch_health(result.instance_url)
            result.healthy = health.get("status") == "healthy"
            result.version = _optional_str(health.get("version"))
            result.api_version = _optional_str(health.get("api_version"))

            try:
                info = await self.client.fetch_info(result.instance_url)
            except PartnerUnavailableError as exc:
                logger.info("Info endpoint unavailable for %s: %s", result.instance_url, exc)
            else:
                features = info.get("supported_features") or []
                result.supported_features = [str(item) for item in features] if isinstance(
                    features, list
                ) else []
                result.federation_enabled = info.get("federation_enabled") is True
                result.compatible = (
                    result.federation_enabled and "submissions" in result.supported_features
                )
        except PartnerUnavailableError as exc:
            result.error = str(exc)
            logger.warning("Instance verification failed for %s: %s", result.instance_url, exc)
        return result

    async def ping_all(self) -> list[PingResult]:
        """Ping every known instance and record the outcome on each row."""
        instances = self.list_known()
        semaphore = asyncio.Semaphore(max(1, settings.discovery_concurrency))

        async def _bounded(instance: FederationInstance) -> PingResult:
            async with semaphore:
                return await self.ping(instance)

        results = await asyncio.gather(*(_bounded(instance) for instance in instances))

        checked_at = utcnow()
        for instance, result in zip(instances, results, strict=True):
            instance.last_health_check_at = checked_at
            if result.healthy:
                instance.status = INSTANCE_STATUS_ACTIVE
                instance.last_seen_at = checked_at
                instance.error_count = 0
                instance.version = result.version
                instance.api_version = result.api_version
                instance.federation_enabled = result.federation_enabled
                instance.supported_features = result.supported_features
            else:
                instance.status = INSTANCE_STATUS_INACTIVE
                instance.error_count = (instance.error_count or 0) + 1
        self.db.commit()

        healthy = sum(1 for result in results if result.healthy)
        logger.info("Health sweep complete: %d/%d instances healthy", healthy, len(results))
        return list(results)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
