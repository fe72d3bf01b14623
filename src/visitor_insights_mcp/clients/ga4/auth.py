"""GA4 API authentication module for Visitor Insights.

This module handles authentication for the Google Analytics 4 Data API,
supporting service account key files, base64-encoded service account
JSON and application default credentials.
"""

import base64
import binascii
import json
import logging
from pathlib import Path

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.auth import default
from google.auth.exceptions import DefaultCredentialsError
from google.oauth2 import service_account

from visitor_insights_mcp.core.config import GA4Config
from visitor_insights_mcp.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ANALYTICS_READONLY_SCOPE = "https://www.googleapis.com/auth/analytics.readonly"


class GA4Authenticator:
    """Handles GA4 API authentication and client creation."""

    def __init__(self, config: GA4Config):
        """Initialize the GA4 authenticator.

        Args:
            config: GA4 configuration containing authentication settings
        """
        self.config = config
        self._client: BetaAnalyticsDataClient | None = None

    def get_client(self) -> BetaAnalyticsDataClient:
        """Get authenticated GA4 Data API client.

        Raises:
            AuthenticationError: If authentication fails
        """
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> BetaAnalyticsDataClient:
        try:
            credentials = self._get_credentials()
            return BetaAnalyticsDataClient(credentials=credentials)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error(f"Failed to create GA4 client: {e}")
            raise AuthenticationError(f"GA4 authentication failed: {e}")

    def _get_credentials(self):
        """Get Google credentials for GA4 API access.

        Key file first, then the base64 blob, then application default
        credentials.

        Raises:
            AuthenticationError: If credentials cannot be obtained
        """
        if self.config.service_account_key_path:
            key_path = Path(self.config.service_account_key_path)
            if not key_path.exists():
                raise AuthenticationError(
                    f"Service account key file not found: {key_path}"
                )

            logger.info(f"Using service account credentials from {key_path}")
            return service_account.Credentials.from_service_account_file(
                str(key_path), scopes=[ANALYTICS_READONLY_SCOPE]
            )

        if self.config.service_account_json_base64:
            logger.info("Using base64-encoded service account credentials")
            info = self._decode_service_account_info(
                self.config.service_account_json_base64.get_secret_value()
            )
            return service_account.Credentials.from_service_account_info(
                info, scopes=[ANALYTICS_READONLY_SCOPE]
            )

        if self.config.use_application_default_credentials:
            logger.info("Using application default credentials for GA4")
            try:
                credentials, _project = default(scopes=[ANALYTICS_READONLY_SCOPE])
            except DefaultCredentialsError:
                raise AuthenticationError(
                    "Application default credentials not available. "
                    "Run 'gcloud auth application-default login' or provide a "
                    "service account key."
                )
            return credentials

        raise AuthenticationError("No authentication method configured for GA4 API")

    @staticmethod
    def _decode_service_account_info(encoded: str) -> dict:
        try:
            return json.loads(base64.b64decode(encoded).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AuthenticationError(
                f"Service account JSON could not be decoded: {e}"
            )
