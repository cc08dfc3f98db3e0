"""Webhook delivery repository (one row per logical delivery, mutated across attempts)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.webhooks import DeliveryStatus, WebhookDelivery
from webhook_service.repositories.base import BaseRepository


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookDelivery:
        return WebhookDelivery.model_validate(WebhookDeliveryRepository._normalize(dict(record)))

    @staticmethod
    def _normalize(payload: dict[str, Any]) -> dict[str, Any]:
        value = payload.get("payload")
        if isinstance(value, str):
            payload["payload"] = json.loads(value)
        return payload

    async def create(
        self,
        *,
        endpoint_id: UUID,
        tenant_id: UUID,
        event_id: UUID,
        event_type: str,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        """Insert a pending delivery at attempt 1.

        The same event fanned out twice to one endpoint returns the existing row.
        """
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (endpoint_id, tenant_id, event_id, event_type, payload)
            VALUES ($1, $2, $3, $4, $5::jsonb)
            ON CONFLICT (endpoint_id, event_id) DO NOTHING
            RETURNING *
            """,
            endpoint_id,
            tenant_id,
            event_id,
            event_type,
            json.dumps(payload),
        )
        if record is None:
            record = await self._fetchrow(
                "SELECT * FROM webhook_deliveries WHERE endpoint_id = $1 AND event_id = $2",
                endpoint_id,
                event_id,
            )
        assert record is not None
        return self._to_model(record)

    async def get(self, delivery_id: UUID) -> WebhookDelivery | None:
        record = await self._fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)
        return self._to_model(record) if record else None

    async def get_for_tenant(self, tenant_id: UUID, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow(
            "SELECT * FROM webhook_deliveries WHERE tenant_id = $1 AND id = $2",
            tenant_id,
            delivery_id,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def list_by_endpoint(
        self,
        endpoint_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        where = ["endpoint_id = $1"]
        values: list[Any] = [endpoint_id]
        idx = 2
        if status is not None:
            where.append(f"status = ${idx}")
            values.append(status.value)
            idx += 1
        where_sql = " AND ".join(where)
        query = f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE {where_sql}
            ORDER BY created_at DESC, id DESC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        values.extend([limit, offset])
        records = await self._fetch(query, *values)
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(WebhookDelivery.model_validate(self._normalize(rec_dict)))
        if total is None:
            total = await self._count(where_sql, values[: idx - 1])
        return items, total

    async def _count(self, where_sql: str, values: list[Any]) -> int:
        record = await self._fetchrow(
            f"SELECT COUNT(*) AS total FROM webhook_deliveries WHERE {where_sql}",
            *values,
        )
        return int(record["total"]) if record else 0

    async def count_by_status(self, tenant_id: UUID) -> dict[str, int]:
        records = await self._fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM webhook_deliveries
            WHERE tenant_id = $1
            GROUP BY status
            """,
            tenant_id,
        )
        return {r["status"]: int(r["total"]) for r in records}

    async def mark_success(
        self, delivery_id: UUID, *, response_code: int, response_body: str | None
    ) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'success',
                response_code = $2,
                response_body = $3,
                delivered_at = now(),
                next_retry_at = NULL,
                skipped_at = NULL,
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            delivery_id,
            response_code,
            response_body,
        )
        return self._required(record)

    async def mark_retrying(
        self,
        delivery_id: UUID,
        *,
        response_code: int,
        response_body: str | None,
        attempt: int,
        next_retry_at: datetime,
    ) -> WebhookDelivery:
        """Record a failed attempt and the next one. A row that already succeeded is returned unchanged."""
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'retrying',
                response_code = $2,
                response_body = $3,
                attempt = GREATEST(attempt, $4),
                next_retry_at = $5,
                skipped_at = NULL,
                updated_at = now()
            WHERE id = $1
              AND status <> 'success'
            RETURNING *
            """,
            delivery_id,
            response_code,
            response_body,
            attempt,
            next_retry_at,
        )
        return await self._unless_delivered(delivery_id, record)

    async def mark_failed(
        self, delivery_id: UUID, *, response_code: int, response_body: str | None
    ) -> WebhookDelivery:
        """Terminal failure; like :meth:`mark_retrying` it never overwrites a success."""
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'failed',
                response_code = $2,
                response_body = $3,
                next_retry_at = NULL,
                skipped_at = NULL,
                updated_at = now()
            WHERE id = $1
              AND status <> 'success'
            RETURNING *
            """,
            delivery_id,
            response_code,
            response_body,
        )
        return await self._unless_delivered(delivery_id, record)

    def _required(self, record: Record | None) -> WebhookDelivery:
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def _unless_delivered(self, delivery_id: UUID, record: Record | None) -> WebhookDelivery:
        if record is not None:
            return self._to_model(record)
        # the guarded update matched nothing: the row is gone or already succeeded
        return self._required(
            await self._fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)
        )

    async def mark_skipped(self, delivery_id: UUID) -> WebhookDelivery | None:
        """Park a pending or retrying delivery whose endpoint is not eligible.

        Parked rows are never picked up by the orphan requeue; only a manual
        retry sends them again.
        """
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET skipped_at = COALESCE(skipped_at, now()),
                next_retry_at = NULL,
                updated_at = now()
            WHERE id = $1
              AND status IN ('pending', 'retrying')
            RETURNING *
            """,
            delivery_id,
        )
        return self._to_model(record) if record else None
