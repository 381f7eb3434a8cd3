"""
Credential resolution, saving, and connection testing.

``CredentialResolver`` owns the ``x_api_settings`` record of each user:

* the publish path resolves credentials and requires ``is_connected``;
* the verify path resolves without that requirement, calls
  ``GET /users/me`` and persists the outcome as ``is_connected``;
* saving credentials always resets ``is_connected`` to ``False`` and then
  tests the connection again when the record is complete.

``is_connected`` is a cached fact, never trusted over a fresh connection test.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from xpublisher.exceptions import (
    CredentialsError,
    CredentialsIncomplete,
    CredentialsNotConnected,
    CredentialsNotFound,
    RemoteError,
    error_payload,
)
from xpublisher.models import REQUIRED_CREDENTIAL_FIELDS, XCredentials
from xpublisher.tools.x_client import XClient

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = REQUIRED_CREDENTIAL_FIELDS + ["bearer_token"]


class CredentialResolver:
    """Fetches, validates, stores and verifies per-user X API credentials.

    Args:
        db: Database client (:class:`~xpublisher.database.SupabaseDB`).
        x_client: Remote client used for connection tests.
    """

    def __init__(self, db: "SupabaseDB", x_client: XClient) -> None:  # noqa: F821
        self.db = db
        self.x_client = x_client

    async def resolve(
        self, user_id: str, require_connected: bool = True
    ) -> XCredentials:
        """Load the user's credentials.

        Args:
            user_id: Owner of the record.
            require_connected: Whether the cached ``is_connected`` flag must
                be set (publish path) or not (verify path).

        Raises:
            CredentialsNotFound: No record exists.
            CredentialsIncomplete: A required field is blank.
            CredentialsNotConnected: ``require_connected`` and the last
                connection test did not succeed.
        """
        row = await self.db.get_credentials(user_id)
        if row is None:
            raise CredentialsNotFound(user_id)

        credentials = XCredentials.from_row(row)
        missing = credentials.missing_fields()
        if missing:
            raise CredentialsIncomplete(user_id, missing)
        if require_connected and not credentials.is_connected:
            raise CredentialsNotConnected(user_id)
        return credentials

    async def is_connected(self, user_id: str) -> bool:
        """Cheap check used before scheduling: complete and connected."""
        try:
            await self.resolve(user_id, require_connected=True)
        except CredentialsError:
            return False
        return True

    async def verify_connection(self, user_id: str) -> Dict[str, Any]:
        """Run the connection test and persist ``is_connected``.

        Returns:
            ``{"success": True, "user": {...}}`` or
            ``{"success": False, "error": ..., "httpStatus": ..., "details": ...}``.

        Raises:
            CredentialsNotFound: The user has no settings record.
        """
        try:
            credentials = await self.resolve(user_id, require_connected=False)
        except CredentialsIncomplete as exc:
            await self.db.set_connected(user_id, False)
            logger.warning(
                "[CREDENTIALS] Incomplete X API settings for user %s: %s",
                user_id,
                exc.missing,
            )
            return error_payload(exc)

        try:
            profile = await self.x_client.verify(credentials)
        except RemoteError as exc:
            await self.db.set_connected(user_id, False)
            logger.warning(
                "[CREDENTIALS] Connection test failed for user %s: %s (retriable=%s)",
                user_id,
                exc,
                exc.retriable,
            )
            payload = error_payload(exc)
            if exc.retriable:
                payload["retriable"] = True
            return payload

        await self.db.set_connected(user_id, True)
        logger.info("[CREDENTIALS] Connection test succeeded for user %s", user_id)
        return {"success": True, "user": profile}

    async def save_credentials(
        self,
        user_id: str,
        fields: Mapping[str, Optional[str]],
        verify: bool = True,
    ) -> Dict[str, Any]:
        """Store new credentials, then re-derive ``is_connected``.

        The record is written with ``is_connected=False``.  When it is
        complete and *verify* is true, a connection test runs and its
        result is persisted.

        Args:
            user_id: Owner of the record.
            fields: Any of ``api_key``, ``api_key_secret``, ``access_token``,
                ``access_token_secret``, ``bearer_token``.  Unknown keys are
                ignored.
            verify: Whether to test the connection after saving.

        Returns:
            ``{"saved": True, "is_connected": bool, "missing": [...],
            "verification": <verify result or None>}``.
        """
        values = {
            name: (fields.get(name) or "").strip()
            for name in EDITABLE_FIELDS
        }
        credentials = XCredentials(
            user_id=user_id,
            api_key=values["api_key"],
            api_key_secret=values["api_key_secret"],
            access_token=values["access_token"],
            access_token_secret=values["access_token_secret"],
            bearer_token=values["bearer_token"] or None,
            is_connected=False,
        )
        await self.db.upsert_credentials(credentials.to_row())
        logger.info("[CREDENTIALS] Saved X API settings for user %s", user_id)

        missing = credentials.missing_fields()
        verification: Optional[Dict[str, Any]] = None
        if verify and not missing:
            verification = await self.verify_connection(user_id)

        return {
            "saved": True,
            "is_connected": bool(verification and verification.get("success")),
            "missing": missing,
            "verification": verification,
        }


__all__ = ["CredentialResolver"]
