"""
Persistence for campaigns, drafts, contacts, templates, webhooks and tracking data.

Every store is a thin wrapper over one Supabase table, scoped by the owning
user's email. Routers and services only talk to these classes, so the
backing database can change without touching the send pipeline.

JSON columns are written as native lists (jsonb). Older rows may hold a JSON
string or, for ``recipients``, a comma-separated string; both are decoded on
read.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from echomail.db import supabase_admin

logger = logging.getLogger(__name__)


class StoreUnavailableError(RuntimeError):
    """The admin database client is not configured."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_json_field(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if not stripped:
        return []
    try:
        return json.loads(stripped)
    except ValueError:
        return [part.strip() for part in stripped.split(",") if part.strip()]


class SupabaseStore:
    table: str = ""
    json_fields: Tuple[str, ...] = ()
    owner_field: str = "user_email"

    def _client(self):
        if supabase_admin is None:
            raise StoreUnavailableError("SUPABASE_SERVICE_KEY is required for database operations")
        return supabase_admin

    def _decode(self, row: Dict[str, Any]) -> Dict[str, Any]:
        for name in self.json_fields:
            if name in row:
                row[name] = _decode_json_field(row[name])
        return row

    def create(self, user_email: str, data: Dict[str, Any]) -> Dict[str, Any]:
        row = {**data, self.owner_field: user_email}
        row.setdefault("created_at", utc_now())
        result = self._client().table(self.table).insert(row).execute()
        if not result.data:
            raise RuntimeError(f"Insert into {self.table} returned no row")
        return self._decode(result.data[0])

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        result = self._client().table(self.table).select("*").eq("id", record_id).execute()
        if not result.data:
            return None
        return self._decode(result.data[0])

    def list_by_user(self, user_email: str, limit: int = 100) -> List[Dict[str, Any]]:
        result = (
            self._client()
            .table(self.table)
            .select("*")
            .eq(self.owner_field, user_email)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [self._decode(row) for row in result.data or []]

    def update(self, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self._client().table(self.table).update(data).eq("id", record_id).execute()
        if not result.data:
            return None
        return self._decode(result.data[0])

    def delete(self, record_id: str) -> bool:
        result = self._client().table(self.table).delete().eq("id", record_id).execute()
        return bool(result.data)

    async def subscribe(
        self, user_email: str, interval: float = 2.0, max_polls: Optional[int] = None
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Yield the user's rows now and again whenever they change.

        Polls every ``interval`` seconds. ``max_polls`` bounds the loop
        (used by tests); by default it runs until the consumer stops.
        """
        last: Optional[str] = None
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            rows = await asyncio.to_thread(self.list_by_user, user_email)
            snapshot = json.dumps(rows, sort_keys=True, default=str)
            if snapshot != last:
                last = snapshot
                yield rows
            if max_polls is None or polls < max_polls:
                await asyncio.sleep(interval)


class CampaignStore(SupabaseStore):
    table = "email_campaigns"
    json_fields = ("recipients", "attachments", "send_results")

    def create(
        self, user_email: str, data: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Insert a campaign. With an ``idempotency_key``, a repeated request
        returns the row created by the first one instead of a duplicate.
        """
        if idempotency_key:
            existing = (
                self._client()
                .table(self.table)
                .select("*")
                .eq(self.owner_field, user_email)
                .eq("idempotency_key", idempotency_key)
                .execute()
            )
            if existing.data:
                logger.info(f"Campaign for idempotency key {idempotency_key} already exists, reusing it")
                return self._decode(existing.data[0])
            data = {**data, "idempotency_key": idempotency_key}
        return super().create(user_email, data)


class DraftStore(SupabaseStore):
    table = "draft_emails"
    json_fields = ("recipients", "attachments", "csv_data")

    def _transition(self, draft_id: str, from_statuses: List[str], data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        # Check and write are a single UPDATE filtered on the current status.
        result = (
            self._client()
            .table(self.table)
            .update(data)
            .eq("id", draft_id)
            .in_("status", from_statuses)
            .execute()
        )
        if not result.data:
            return None
        return self._decode(result.data[0])

    def claim_for_send(self, draft_id: str) -> Optional[Dict[str, Any]]:
        """pending -> sending. Returns None when the draft was not pending."""
        return self._transition(draft_id, ["pending"], {"status": "sending", "error": None})

    def release(self, draft_id: str, error: str) -> Optional[Dict[str, Any]]:
        """sending -> pending, keeping ``error`` so the user sees why the send stopped."""
        return self._transition(draft_id, ["sending"], {"status": "pending", "error": error})

    def finish(self, draft_id: str, status: str, error: Optional[str]) -> Optional[Dict[str, Any]]:
        """sending -> completed | failed."""
        return self._transition(draft_id, ["sending"], {"status": status, "error": error, "sent_at": utc_now()})

    def reset_to_pending(self, draft_id: str) -> Optional[Dict[str, Any]]:
        """completed | failed -> pending, so the draft can be sent again."""
        return self._transition(
            draft_id, ["completed", "failed"], {"status": "pending", "error": None, "sent_at": None}
        )


class ContactStore(SupabaseStore):
    table = "contacts"
    json_fields = ("tags",)

    def find_by_email(self, user_email: str, email: str) -> Optional[Dict[str, Any]]:
        result = (
            self._client()
            .table(self.table)
            .select("*")
            .eq(self.owner_field, user_email)
            .eq("email", email.lower())
            .execute()
        )
        return self._decode(result.data[0]) if result.data else None


class TemplateStore(SupabaseStore):
    table = "templates"


class WebhookStore(SupabaseStore):
    table = "webhooks"
    json_fields = ("events",)

    def list_active_for_event(self, user_email: str, event: str) -> List[Dict[str, Any]]:
        return [
            hook for hook in self.list_by_user(user_email)
            if hook.get("is_active") and event in (hook.get("events") or [])
        ]

    def mark_triggered(self, webhook_id: str) -> None:
        self.update(webhook_id, {"last_triggered_at": utc_now()})


class TrackingEventStore(SupabaseStore):
    table = "tracking_events"


class UnsubscribeStore(SupabaseStore):
    table = "unsubscribes"

    def find(self, user_email: str, email: str) -> Optional[Dict[str, Any]]:
        result = (
            self._client()
            .table(self.table)
            .select("*")
            .eq(self.owner_field, user_email)
            .eq("email", email.lower())
            .execute()
        )
        return result.data[0] if result.data else None


campaign_store = CampaignStore()
draft_store = DraftStore()
contact_store = ContactStore()
template_store = TemplateStore()
webhook_store = WebhookStore()
tracking_event_store = TrackingEventStore()
unsubscribe_store = UnsubscribeStore()
