"""Webhook endpoint repository."""
from __future__ import annotations

from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.webhooks import WILDCARD_EVENT, WebhookEndpoint
from webhook_service.repositories.base import BaseRepository

_UPDATABLE_COLUMNS = frozenset({"url", "subscribed_events", "description"})


class WebhookEndpointRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookEndpoint:
        return WebhookEndpoint.model_validate(dict(record))

    def _one(self, record: Record | None) -> WebhookEndpoint:
        if record is None:
            raise NotFoundError("Webhook endpoint not found")
        return self._to_model(record)

    async def create(
        self,
        *,
        tenant_id: UUID,
        url: str,
        subscribed_events: list[str],
        secret: str,
        description: str | None = None,
    ) -> WebhookEndpoint:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_endpoints (tenant_id, url, subscribed_events, secret, description)
            VALUES ($1, $2, $3::text[], $4, $5)
            RETURNING *
            """,
            tenant_id,
            url,
            subscribed_events,
            secret,
            description,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        record = await self._fetchrow(
            "SELECT * FROM webhook_endpoints WHERE tenant_id = $1 AND id = $2",
            tenant_id,
            endpoint_id,
        )
        return self._one(record)

    async def get_by_id(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        record = await self._fetchrow("SELECT * FROM webhook_endpoints WHERE id = $1", endpoint_id)
        return self._to_model(record) if record else None

    async def list_by_tenant(
        self, tenant_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookEndpoint], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_endpoints
            WHERE tenant_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            tenant_id,
            limit,
            offset,
        )
        items: List[WebhookEndpoint] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(WebhookEndpoint.model_validate(rec_dict))
        if total is None:
            total = await self._count_by_tenant(tenant_id)
        return items, total

    async def _count_by_tenant(self, tenant_id: UUID) -> int:
        record = await self._fetchrow(
            "SELECT COUNT(*) AS total FROM webhook_endpoints WHERE tenant_id = $1",
            tenant_id,
        )
        return int(record["total"]) if record else 0

    async def list_eligible_for_event(self, tenant_id: UUID, event_type: str) -> List[WebhookEndpoint]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_endpoints
            WHERE tenant_id = $1
              AND active
              AND disabled_at IS NULL
              AND subscribed_events && ARRAY[$2, $3]::text[]
            ORDER BY created_at ASC
            """,
            tenant_id,
            event_type,
            WILDCARD_EVENT,
        )
        return [self._to_model(r) for r in records]

    async def update(self, tenant_id: UUID, endpoint_id: UUID, changes: dict[str, Any]) -> WebhookEndpoint:
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns are not updatable: {sorted(unknown)}")
        if not changes:
            return await self.get(tenant_id, endpoint_id)
        assignments = []
        values: list[Any] = [tenant_id, endpoint_id]
        for column, value in changes.items():
            values.append(value)
            cast = "::text[]" if column == "subscribed_events" else ""
            assignments.append(f"{column} = ${len(values)}{cast}")
        record = await self._fetchrow(
            f"""
            UPDATE webhook_endpoints
            SET {", ".join(assignments)},
                updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            *values,
        )
        return self._one(record)

    async def delete(self, tenant_id: UUID, endpoint_id: UUID) -> None:
        record = await self._fetchrow(
            "DELETE FROM webhook_endpoints WHERE tenant_id = $1 AND id = $2 RETURNING id",
            tenant_id,
            endpoint_id,
        )
        if record is None:
            raise NotFoundError("Webhook endpoint not found")

    async def set_secret(self, tenant_id: UUID, endpoint_id: UUID, secret: str) -> WebhookEndpoint:
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET secret = $3, updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            tenant_id,
            endpoint_id,
            secret,
        )
        return self._one(record)

    async def deactivate(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET active = false,
                disabled_at = COALESCE(disabled_at, now()),
                updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            tenant_id,
            endpoint_id,
        )
        return self._one(record)

    async def reactivate(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET active = true,
                disabled_at = NULL,
                failure_count = 0,
                updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            tenant_id,
            endpoint_id,
        )
        return self._one(record)

    async def reset_circuit(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET failure_count = 0,
                disabled_at = NULL,
                updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            tenant_id,
            endpoint_id,
        )
        return self._one(record)

    async def increment_failure_count(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        """Atomically add one consecutive failure; concurrent callers never lose updates."""
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET failure_count = failure_count + 1,
                last_triggered_at = now(),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            endpoint_id,
        )
        return self._to_model(record) if record else None

    async def open_circuit(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        """Set ``disabled_at`` unless already set."""
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET disabled_at = COALESCE(disabled_at, now()),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            endpoint_id,
        )
        return self._to_model(record) if record else None

    async def reset_failure_count(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        record = await self._fetchrow(
            """
            UPDATE webhook_endpoints
            SET failure_count = 0,
                last_triggered_at = now(),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            endpoint_id,
        )
        return self._to_model(record) if record else None
