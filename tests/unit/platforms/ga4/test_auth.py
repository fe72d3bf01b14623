"""Unit tests for GA4 authentication module."""

import base64
import json
from unittest.mock import Mock, patch

import pytest
from google.auth.exceptions import DefaultCredentialsError

from visitor_insights_mcp.clients.ga4.auth import (
    ANALYTICS_READONLY_SCOPE,
    GA4Authenticator,
)
from visitor_insights_mcp.core.config import GA4Config
from visitor_insights_mcp.core.exceptions import AuthenticationError

AUTH_MODULE = "visitor_insights_mcp.clients.ga4.auth"


class TestGA4Authenticator:
    """Test GA4 authentication functionality."""

    @pytest.fixture
    def ga4_config_minimal(self):
        """Create minimal GA4 configuration."""
        return GA4Config(
            enabled=True,
            property_id="123456789",
            use_application_default_credentials=True,
        )

    def test_init_with_valid_config(self, ga4_config_minimal):
        authenticator = GA4Authenticator(ga4_config_minimal)

        assert authenticator.config == ga4_config_minimal
        assert authenticator._client is None

    @patch(f"{AUTH_MODULE}.BetaAnalyticsDataClient")
    @patch(f"{AUTH_MODULE}.service_account.Credentials.from_service_account_file")
    def test_key_file_credentials(self, mock_from_file, mock_client_class, tmp_path):
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")
        config = GA4Config(
            enabled=True,
            property_id="123456789",
            service_account_key_path=str(key_file),
        )

        client = GA4Authenticator(config).get_client()

        mock_from_file.assert_called_once_with(
            str(key_file), scopes=[ANALYTICS_READONLY_SCOPE]
        )
        mock_client_class.assert_called_once_with(
            credentials=mock_from_file.return_value
        )
        assert client is mock_client_class.return_value

    def test_missing_key_file(self, tmp_path):
        config = GA4Config(
            enabled=True,
            property_id="123456789",
            service_account_key_path=str(tmp_path / "absent.json"),
        )

        with pytest.raises(AuthenticationError, match="key file not found"):
            GA4Authenticator(config).get_client()

    @patch(f"{AUTH_MODULE}.BetaAnalyticsDataClient")
    @patch(f"{AUTH_MODULE}.service_account.Credentials.from_service_account_info")
    def test_base64_credentials(self, mock_from_info, mock_client_class):
        info = {"type": "service_account", "client_email": "svc@example.iam"}
        encoded = base64.b64encode(json.dumps(info).encode("utf-8")).decode("ascii")
        config = GA4Config(
            enabled=True,
            property_id="123456789",
            service_account_json_base64=encoded,
        )

        GA4Authenticator(config).get_client()

        mock_from_info.assert_called_once_with(info, scopes=[ANALYTICS_READONLY_SCOPE])

    def test_base64_credentials_must_be_json(self):
        encoded = base64.b64encode(b"not json").decode("ascii")
        config = GA4Config(
            enabled=True,
            property_id="123456789",
            service_account_json_base64=encoded,
        )

        with pytest.raises(AuthenticationError, match="could not be decoded"):
            GA4Authenticator(config).get_client()

    @patch(f"{AUTH_MODULE}.BetaAnalyticsDataClient")
    @patch(f"{AUTH_MODULE}.default")
    def test_application_default_credentials(
        self, mock_default, mock_client_class, ga4_config_minimal
    ):
        credentials = Mock()
        mock_default.return_value = (credentials, "project")

        GA4Authenticator(ga4_config_minimal).get_client()

        mock_default.assert_called_once_with(scopes=[ANALYTICS_READONLY_SCOPE])
        mock_client_class.assert_called_once_with(credentials=credentials)

    @patch(f"{AUTH_MODULE}.default")
    def test_application_default_credentials_missing(
        self, mock_default, ga4_config_minimal
    ):
        mock_default.side_effect = DefaultCredentialsError("no credentials")

        with pytest.raises(AuthenticationError, match="gcloud auth"):
            GA4Authenticator(ga4_config_minimal).get_client()

    def test_no_method_configured(self):
        config = GA4Config(use_application_default_credentials=False)

        with pytest.raises(AuthenticationError, match="No authentication method"):
            GA4Authenticator(config).get_client()

    @patch(f"{AUTH_MODULE}.BetaAnalyticsDataClient")
    @patch(f"{AUTH_MODULE}.default")
    def test_client_is_cached(self, mock_default, mock_client_class, ga4_config_minimal):
        mock_default.return_value = (Mock(), "project")
        authenticator = GA4Authenticator(ga4_config_minimal)

        first = authenticator.get_client()
        second = authenticator.get_client()

        assert first is second
        mock_client_class.assert_called_once()

    @patch(f"{AUTH_MODULE}.BetaAnalyticsDataClient")
    @patch(f"{AUTH_MODULE}.default")
    def test_client_construction_failure(
        self, mock_default, mock_client_class, ga4_config_minimal
    ):
        mock_default.return_value = (Mock(), "project")
        mock_client_class.side_effect = RuntimeError("transport unavailable")

        with pytest.raises(AuthenticationError, match="transport unavailable"):
            GA4Authenticator(ga4_config_minimal).get_client()
