"""
Tests for the email service.

Tests cover:
- Status notification sending through Resend
- Skipping when RESEND_API_KEY is not configured
- Error handling
- Template content
"""

from unittest.mock import patch

from app.models.status import StatusChange


def _configure(mock_settings):
    mock_settings.RESEND_API_KEY = "test_api_key"
    mock_settings.FROM_EMAIL = "alerts@example.com"
    mock_settings.APP_URL = "https://vpsalert.example.com/"


class TestStatusNotificationEmail:
    """Tests for send_status_notification_email."""

    @patch("app.services.email.settings")
    @patch("app.services.email.resend")
    def test_send_available_notification(self, mock_resend, mock_settings):
        """Test successful notification sending."""
        from app.services.email import send_status_notification_email

        _configure(mock_settings)
        mock_resend.Emails.send.return_value = {"id": "test_email_id"}

        result = send_status_notification_email("user@example.com", 3, "GRA", StatusChange.BECAME_AVAILABLE, "tok123")

        assert result is True
        mock_resend.Emails.send.assert_called_once()

        call_args = mock_resend.Emails.send.call_args[0][0]
        assert call_args["to"] == ["user@example.com"]
        assert call_args["from"] == "alerts@example.com"
        assert call_args["subject"] == "VPS-3 is Available in Gravelines, France"
        assert "https://vpsalert.example.com/unsubscribe/tok123" in call_args["html"]
        assert "https://vpsalert.example.com/manage/tok123" in call_args["text"]
        assert call_args["headers"]["List-Unsubscribe"] == "<https://vpsalert.example.com/unsubscribe/tok123>"

    @patch("app.services.email.settings")
    def test_no_api_key_skips(self, mock_settings):
        """Test that sending is skipped when RESEND_API_KEY is empty."""
        from app.services.email import send_status_notification_email

        mock_settings.RESEND_API_KEY = ""

        result = send_status_notification_email("user@example.com", 1, "SBG", StatusChange.BECAME_AVAILABLE, "tok")

        assert result is False

    @patch("app.services.email.settings")
    @patch("app.services.email.resend")
    def test_send_error_returns_false(self, mock_resend, mock_settings):
        """Test that a Resend failure is reported as non-delivery."""
        from app.services.email import send_status_notification_email

        _configure(mock_settings)
        mock_resend.Emails.send.side_effect = Exception("API Error")

        result = send_status_notification_email("user@example.com", 1, "SBG", StatusChange.BECAME_AVAILABLE, "tok")

        assert result is False


class TestTemplate:
    @patch("app.services.email.settings")
    def test_out_of_stock_content(self, mock_settings):
        from app.services.email import OVH_ORDER_URL, render_status_notification

        _configure(mock_settings)

        content = render_status_notification(6, "UK", StatusChange.BECAME_OUT_OF_STOCK, "tok")

        assert content.subject == "VPS-6 is Out of Stock in London, UK"
        assert "24 vCores, 96GB RAM, 400GB SSD" in content.text
        assert OVH_ORDER_URL not in content.html

    @patch("app.services.email.settings")
    def test_available_content_links_to_order_page(self, mock_settings):
        from app.services.email import OVH_ORDER_URL, render_status_notification

        _configure(mock_settings)

        content = render_status_notification(1, "SGP", StatusChange.BECAME_AVAILABLE, "tok")

        assert OVH_ORDER_URL in content.html
        assert OVH_ORDER_URL in content.text
