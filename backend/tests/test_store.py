"""
Tests for the Supabase-backed stores.

The admin client is patched with a chain mock so no database is contacted.
"""

from unittest.mock import MagicMock, patch

import pytest

from conftest import TEST_USER_EMAIL, make_supabase_chain
from echomail.services.store import (
    CampaignStore,
    ContactStore,
    DraftStore,
    StoreUnavailableError,
    UnsubscribeStore,
    WebhookStore,
    _decode_json_field,
)


def _client_with(*results):
    chain = make_supabase_chain(*results)
    client = MagicMock()
    client.table.return_value = chain
    return client, chain


class TestDecodeJsonField:
    def test_native_list_unchanged(self):
        """Lists from jsonb columns come back as they are."""
        assert _decode_json_field(["a@example.com"]) == ["a@example.com"]

    def test_json_string(self):
        """JSON text columns are decoded."""
        assert _decode_json_field('["a@example.com", "b@example.com"]') == ["a@example.com", "b@example.com"]

    def test_comma_separated_string(self):
        """Legacy comma-separated values are split."""
        assert _decode_json_field("a@example.com, b@example.com,") == ["a@example.com", "b@example.com"]

    def test_empty_string(self):
        """An empty string decodes to an empty list."""
        assert _decode_json_field("  ") == []

    def test_none(self):
        assert _decode_json_field(None) is None


class TestSupabaseStore:
    def test_create_sets_owner_and_decodes(self):
        """create stamps the owner and decodes JSON fields in the returned row."""
        client, chain = _client_with([{"id": "c-1", "recipients": '["a@example.com"]', "user_email": TEST_USER_EMAIL}])

        with patch("echomail.services.store.supabase_admin", client):
            row = CampaignStore().create(TEST_USER_EMAIL, {"subject": "Hi"})

        assert row["recipients"] == ["a@example.com"]
        client.table.assert_called_with("email_campaigns")
        inserted = chain.insert.call_args.args[0]
        assert inserted["user_email"] == TEST_USER_EMAIL
        assert inserted["subject"] == "Hi"
        assert "created_at" in inserted
        assert "idempotency_key" not in inserted

    def test_create_without_returned_row_raises(self):
        """An insert that returns nothing is an error."""
        client, _ = _client_with([])
        with patch("echomail.services.store.supabase_admin", client):
            with pytest.raises(RuntimeError, match="returned no row"):
                CampaignStore().create(TEST_USER_EMAIL, {"subject": "Hi"})

    def test_get(self):
        client, chain = _client_with([{"id": "c-1", "recipients": "a@example.com,b@example.com"}], [])

        with patch("echomail.services.store.supabase_admin", client):
            store = CampaignStore()
            assert store.get("c-1")["recipients"] == ["a@example.com", "b@example.com"]
            assert store.get("missing") is None

        chain.eq.assert_any_call("id", "c-1")

    def test_list_by_user_is_scoped_and_ordered(self):
        """Lists are filtered by owner, newest first."""
        client, chain = _client_with([{"id": "1", "tags": '["vip"]'}, {"id": "2", "tags": []}])

        with patch("echomail.services.store.supabase_admin", client):
            rows = ContactStore().list_by_user(TEST_USER_EMAIL, limit=10)

        assert [r["tags"] for r in rows] == [["vip"], []]
        chain.eq.assert_called_with("user_email", TEST_USER_EMAIL)
        chain.order.assert_called_with("created_at", desc=True)
        chain.limit.assert_called_with(10)

    def test_update_and_delete(self):
        """update returns the new row; delete reports whether a row went."""
        client, _ = _client_with([{"id": "c-1", "subject": "New"}], [], [{"id": "c-1"}], [])

        with patch("echomail.services.store.supabase_admin", client):
            store = CampaignStore()
            assert store.update("c-1", {"subject": "New"})["subject"] == "New"
            assert store.update("missing", {"subject": "New"}) is None
            assert store.delete("c-1") is True
            assert store.delete("missing") is False

    def test_unconfigured_client(self):
        """Without credentials the store raises on use."""
        with patch("echomail.services.store.supabase_admin", None):
            with pytest.raises(StoreUnavailableError):
                CampaignStore().get("c-1")


class TestCampaignIdempotency:
    def test_existing_key_returns_first_row(self):
        """A known idempotency key returns the stored campaign."""
        existing = {"id": "c-1", "subject": "Hi", "idempotency_key": "key-1"}
        client, chain = _client_with([existing])

        with patch("echomail.services.store.supabase_admin", client):
            row = CampaignStore().create(TEST_USER_EMAIL, {"subject": "Hi"}, idempotency_key="key-1")

        assert row["id"] == "c-1"
        chain.insert.assert_not_called()
        chain.eq.assert_any_call("idempotency_key", "key-1")

    def test_new_key_is_stored(self):
        """An unknown key is stored with the campaign."""
        client, chain = _client_with([], [{"id": "c-2", "subject": "Hi"}])

        with patch("echomail.services.store.supabase_admin", client):
            row = CampaignStore().create(TEST_USER_EMAIL, {"subject": "Hi"}, idempotency_key="key-2")

        assert row["id"] == "c-2"
        assert chain.insert.call_args.args[0]["idempotency_key"] == "key-2"


class TestDraftTransitions:
    def test_claim_only_moves_a_pending_draft(self):
        """claim_for_send writes sending, filtered on status pending."""
        client, chain = _client_with([{"id": "d-1", "status": "sending", "recipients": '["a@example.com"]'}])

        with patch("echomail.services.store.supabase_admin", client):
            row = DraftStore().claim_for_send("d-1")

        client.table.assert_called_with("draft_emails")
        assert row["recipients"] == ["a@example.com"]
        assert chain.update.call_args.args[0] == {"status": "sending", "error": None}
        chain.eq.assert_any_call("id", "d-1")
        chain.in_.assert_called_with("status", ["pending"])

    def test_claim_of_non_pending_draft_returns_none(self):
        """No row updated means another request got there first."""
        client, _ = _client_with([])
        with patch("echomail.services.store.supabase_admin", client):
            assert DraftStore().claim_for_send("d-1") is None

    def test_release_returns_sending_draft_to_pending(self):
        """release keeps the error message for the user."""
        client, chain = _client_with([{"id": "d-1", "status": "pending"}])
        with patch("echomail.services.store.supabase_admin", client):
            DraftStore().release("d-1", "Failed to process attachments")
        assert chain.update.call_args.args[0] == {"status": "pending", "error": "Failed to process attachments"}
        chain.in_.assert_called_with("status", ["sending"])

    def test_finish_records_outcome_and_time(self):
        """finish moves sending to the final status and stamps sent_at."""
        client, chain = _client_with([{"id": "d-1", "status": "failed"}])
        with patch("echomail.services.store.supabase_admin", client):
            DraftStore().finish("d-1", "failed", "1 of 1 emails failed")
        written = chain.update.call_args.args[0]
        assert written["status"] == "failed"
        assert written["error"] == "1 of 1 emails failed"
        assert written["sent_at"]
        chain.in_.assert_called_with("status", ["sending"])

    def test_reset_to_pending_from_finished_states(self):
        """Completed and failed drafts go back to pending with the last error cleared."""
        client, chain = _client_with([{"id": "d-1", "status": "pending"}])
        with patch("echomail.services.store.supabase_admin", client):
            DraftStore().reset_to_pending("d-1")
        assert chain.update.call_args.args[0] == {"status": "pending", "error": None, "sent_at": None}
        chain.in_.assert_called_with("status", ["completed", "failed"])


class TestLookups:
    def test_contact_find_by_email_lowercases(self):
        """Contact lookups are case-insensitive."""
        client, chain = _client_with([{"id": "1", "email": "a@example.com", "tags": "[]"}])

        with patch("echomail.services.store.supabase_admin", client):
            row = ContactStore().find_by_email(TEST_USER_EMAIL, "A@Example.com")

        assert row["tags"] == []
        chain.eq.assert_any_call("email", "a@example.com")

    def test_unsubscribe_find_missing(self):
        """No row means None."""
        client, _ = _client_with([])
        with patch("echomail.services.store.supabase_admin", client):
            assert UnsubscribeStore().find(TEST_USER_EMAIL, "a@example.com") is None

    def test_active_webhooks_for_event(self):
        """Only active hooks subscribed to the event are returned."""
        rows = [
            {"id": "w-1", "is_active": True, "events": '["campaign.sent"]'},
            {"id": "w-2", "is_active": False, "events": ["campaign.sent"]},
            {"id": "w-3", "is_active": True, "events": ["email.opened"]},
            {"id": "w-4", "is_active": True, "events": ["campaign.sent", "email.opened"]},
        ]
        client, _ = _client_with(rows)

        with patch("echomail.services.store.supabase_admin", client):
            hooks = WebhookStore().list_active_for_event(TEST_USER_EMAIL, "campaign.sent")

        assert [h["id"] for h in hooks] == ["w-1", "w-4"]

    def test_mark_triggered(self):
        """last_triggered_at is set to now."""
        client, chain = _client_with([{"id": "w-1"}])
        with patch("echomail.services.store.supabase_admin", client):
            WebhookStore().mark_triggered("w-1")
        assert "last_triggered_at" in chain.update.call_args.args[0]


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_yields_initial_rows_and_changes_only(self):
        """The first poll yields all rows, later polls only changes."""
        store = CampaignStore()
        first = [{"id": "c-1", "status": "sending"}]
        second = [{"id": "c-1", "status": "completed"}]

        with patch.object(store, "list_by_user", side_effect=[first, first, second]):
            snapshots = [rows async for rows in store.subscribe(TEST_USER_EMAIL, interval=0, max_polls=3)]

        assert snapshots == [first, second]
