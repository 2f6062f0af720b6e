"""Unit tests for ResendClient."""

from unittest.mock import patch

import pytest
from resend.exceptions import ResendError

from faloclaro.utils.resend_client import ResendClient, get_resend_client, mask_api_key


def _resend_error(code, message="boom"):
    return ResendError(code=code, error_type="application_error", message=message, suggested_action="")


class TestResendClient:
    @pytest.fixture
    def client(self):
        return ResendClient(api_key="re_test_1234567890", from_email="Test <t@x.pt>", retry_delay=0.01)

    def test_initialization_requires_key(self, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        with pytest.raises(ValueError, match="Resend credentials required"):
            ResendClient()

    def test_get_resend_client_without_key(self, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        assert get_resend_client() is None

    @patch("faloclaro.utils.resend_client.resend.Emails.send")
    def test_send_success(self, mock_send, client):
        mock_send.return_value = {"id": "msg-1"}

        success, metadata = client.send_email("a@x.pt", "Hello", "<p>Hi</p>", text="Hi", reply_to="r@x.pt")

        assert success is True
        assert metadata["id"] == "msg-1"
        assert metadata["attempts"] == 1
        params = mock_send.call_args.args[0]
        assert params["to"] == ["a@x.pt"]
        assert params["from"] == "Test <t@x.pt>"
        assert params["text"] == "Hi"
        assert params["reply_to"] == "r@x.pt"
        assert client.get_statistics() == {"total_sent": 1, "failed_sends": 0}

    @patch("faloclaro.utils.resend_client.time.sleep")
    @patch("faloclaro.utils.resend_client.resend.Emails.send")
    def test_retry_on_rate_limit(self, mock_send, mock_sleep, client):
        mock_send.side_effect = [_resend_error(429), {"id": "msg-2"}]

        success, metadata = client.send_email(["a@x.pt"], "Hello", "<p>Hi</p>")

        assert success is True
        assert metadata["attempts"] == 2
        mock_sleep.assert_called_once()

    @patch("faloclaro.utils.resend_client.time.sleep")
    @patch("faloclaro.utils.resend_client.resend.Emails.send")
    def test_validation_error_not_retried(self, mock_send, mock_sleep, client):
        mock_send.side_effect = _resend_error(422, "Invalid `to` field")

        success, metadata = client.send_email("bad", "Hello", "<p>Hi</p>")

        assert success is False
        assert "Invalid" in metadata["error"]
        assert mock_send.call_count == 1
        mock_sleep.assert_not_called()
        assert client.failed_sends == 1

    @patch("faloclaro.utils.resend_client.resend.Emails.send")
    def test_unexpected_error(self, mock_send, client):
        mock_send.side_effect = ConnectionError("network down")

        success, metadata = client.send_email("a@x.pt", "Hello", "<p>Hi</p>")

        assert success is False
        assert metadata["error"] == "network down"

    def test_describe_masks_key(self, client):
        assert client.describe()["apiKeyPrefix"] == "re_test...7890"
        assert mask_api_key(None) == "not set"
