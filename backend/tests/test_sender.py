"""
Tests for the sequential campaign sender.

Gmail is replaced with a mock whose ``send_raw`` records the raw messages, so
assertions can decode exactly what would have been submitted.
"""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from echomail.models.email import DeliveryState, PersonalizedEmail
from echomail.services.gmail import GmailAPIError
from echomail.services.sender import TrackingOptions, send_personalized_emails, summarize


def _email(to, name=None, subject="Hello {{name}}", message="<p>Hi {{name}}</p>", attachments=None):
    return PersonalizedEmail.model_validate({
        "to": to,
        "subject": subject,
        "message": message,
        "originalRowData": {"name": name} if name is not None else {},
        "attachments": attachments or [],
    })


def _fake_gmail(side_effect=None):
    gmail = MagicMock()
    gmail.send_raw = AsyncMock(side_effect=side_effect, return_value={"id": "msg"})
    return gmail


def _decode(raw):
    return base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")


def _sent_messages(gmail):
    return [_decode(call.args[0]) for call in gmail.send_raw.await_args_list]


def _subject(message):
    line = next(l for l in message.split("\r\n") if l.startswith("Subject: "))
    encoded = line[len("Subject: =?UTF-8?B?"):-len("?=")]
    return base64.b64decode(encoded).decode("utf-8")


class TestSendPersonalizedEmails:
    """One result per recipient, in input order."""

    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_one_recipient(self):
        """One Gmail error marks that recipient failed and the loop continues."""
        gmail = _fake_gmail(side_effect=[
            {"id": "1"},
            GmailAPIError("Gmail API error (500): backend error", status_code=500),
            {"id": "3"},
        ])
        emails = [_email("a@example.com"), _email("b@example.com"), _email("c@example.com")]

        results, summary = await send_personalized_emails(emails, gmail, "sender@example.com", delay_seconds=0)

        assert [r.email for r in results] == ["a@example.com", "b@example.com", "c@example.com"]
        assert [r.status for r in results] == ["success", "error", "success"]
        assert results[1].error == "Gmail API error (500): backend error"
        assert (summary.total, summary.sent, summary.failed) == (3, 2, 1)
        assert gmail.send_raw.await_count == 3

    @pytest.mark.asyncio
    async def test_messages_are_personalized(self):
        """Subject and body are personalized per recipient; body values are escaped."""
        gmail = _fake_gmail()
        emails = [_email("alice@example.com", "Alice"), _email("bob@example.com", "<Bob>")]

        await send_personalized_emails(emails, gmail, "sender@example.com", delay_seconds=0)

        alice, bob = _sent_messages(gmail)
        assert "From: sender@example.com" in alice
        assert "To: alice@example.com" in alice
        assert _subject(alice) == "Hello Alice"
        assert "Hi Alice</div>" in alice
        assert '<div dir="ltr"' in alice

        assert "To: bob@example.com" in bob
        assert _subject(bob) == "Hello <Bob>"
        assert "Hi &lt;Bob&gt;</div>" in bob

    @pytest.mark.asyncio
    async def test_recipient_email_placeholder(self):
        """{{email}} resolves to the recipient address."""
        gmail = _fake_gmail()
        await send_personalized_emails(
            [_email("dana@example.com", message="<p>Sent to {{email}}</p>")],
            gmail,
            "sender@example.com",
            delay_seconds=0,
        )
        assert "Sent to dana@example.com" in _sent_messages(gmail)[0]

    @pytest.mark.asyncio
    async def test_bad_attachment_fails_only_that_recipient(self):
        """Invalid attachment data fails one recipient without stopping the run."""
        gmail = _fake_gmail()
        good = {"name": "a.txt", "type": "text/plain", "data": "aGVsbG8="}
        bad = {"name": "b.txt", "type": "text/plain", "data": "%%%"}
        emails = [
            _email("a@example.com", attachments=[good]),
            _email("b@example.com", attachments=[bad]),
            _email("c@example.com"),
        ]

        results, summary = await send_personalized_emails(emails, gmail, "sender@example.com", delay_seconds=0)

        assert [r.status for r in results] == ["success", "error", "success"]
        assert "valid base64" in results[1].error
        assert gmail.send_raw.await_count == 2
        assert "Content-Transfer-Encoding: base64" in _sent_messages(gmail)[0]

    @pytest.mark.asyncio
    async def test_exception_without_message_reports_type(self):
        """An exception with no message is reported by its type name."""
        gmail = _fake_gmail(side_effect=RuntimeError())
        results, _ = await send_personalized_emails([_email("a@example.com")], gmail, "s@example.com", delay_seconds=0)
        assert results[0].error == "RuntimeError"

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        """Every recipient goes pending, then sending, then success or error."""
        gmail = _fake_gmail(side_effect=[GmailAPIError("nope"), {"id": "2"}])
        transitions = []

        await send_personalized_emails(
            [_email("a@example.com"), _email("b@example.com")],
            gmail,
            "sender@example.com",
            delay_seconds=0,
            on_state_change=lambda index, address, state: transitions.append((index, state)),
        )

        assert transitions == [
            (0, DeliveryState.PENDING),
            (1, DeliveryState.PENDING),
            (0, DeliveryState.SENDING),
            (0, DeliveryState.ERROR),
            (1, DeliveryState.SENDING),
            (1, DeliveryState.SUCCESS),
        ]

    @pytest.mark.asyncio
    async def test_pauses_between_sends_only(self):
        """The delay runs between sends, not before the first."""
        gmail = _fake_gmail()
        emails = [_email("a@example.com"), _email("b@example.com"), _email("c@example.com")]

        with patch("echomail.services.sender.asyncio.sleep", new=AsyncMock()) as sleep:
            await send_personalized_emails(emails, gmail, "sender@example.com", delay_seconds=2)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2)

    @pytest.mark.asyncio
    async def test_body_formatted_once_per_template(self):
        """A shared body is formatted once for the whole campaign."""
        gmail = _fake_gmail()
        emails = [_email("a@example.com", "A"), _email("b@example.com", "B")]

        with patch("echomail.services.sender.format_for_email", side_effect=lambda body: body) as fmt:
            await send_personalized_emails(emails, gmail, "sender@example.com", delay_seconds=0)

        fmt.assert_called_once_with("<p>Hi {{name}}</p>")

    @pytest.mark.asyncio
    async def test_empty_campaign(self):
        """No recipients means no sends and an all-zero summary."""
        gmail = _fake_gmail()
        results, summary = await send_personalized_emails([], gmail, "sender@example.com", delay_seconds=0)
        assert results == []
        assert (summary.total, summary.sent, summary.failed) == (0, 0, 0)
        gmail.send_raw.assert_not_awaited()


class TestTrackedSend:
    @pytest.mark.asyncio
    async def test_tracking_is_injected_per_recipient(self):
        """Tracking pixel, click links and unsubscribe link carry the recipient."""
        gmail = _fake_gmail()
        tracking = TrackingOptions(campaign_id="camp_1", user_email="sender@example.com", base_url="https://mail.test")
        emails = [
            _email("alice@example.com", "Alice", message='<p>See <a href="https://example.com/x">this</a></p>'),
        ]

        await send_personalized_emails(emails, gmail, "sender@example.com", tracking=tracking, delay_seconds=0)

        message = _sent_messages(gmail)[0]
        assert "https://mail.test/track-open?c=camp_1&amp;e=alice%40example.com" in message
        assert "https://mail.test/track-click?url=https%3A%2F%2Fexample.com%2Fx&amp;c=camp_1" in message
        assert "https://mail.test/unsubscribe?e=alice%40example.com&amp;u=sender%40example.com" in message

    @pytest.mark.asyncio
    async def test_transactional_mail_has_no_unsubscribe_footer(self):
        """Transactional mail is tracked but has no unsubscribe footer."""
        gmail = _fake_gmail()
        tracking = TrackingOptions(
            campaign_id="camp_1", user_email="sender@example.com", is_transactional=True, base_url="https://mail.test"
        )

        await send_personalized_emails([_email("a@example.com", "A")], gmail, "s@example.com", tracking=tracking, delay_seconds=0)

        message = _sent_messages(gmail)[0]
        assert "/track-open?" in message
        assert "/unsubscribe?" not in message


def test_summarize():
    from echomail.models.email import SendResult

    summary = summarize([
        SendResult(email="a@example.com", status="success"),
        SendResult(email="b@example.com", status="error", error="x"),
    ])
    assert (summary.total, summary.sent, summary.failed) == (2, 1, 1)
