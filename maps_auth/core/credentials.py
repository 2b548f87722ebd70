import logging
from typing import Optional

from azure.core.credentials import TokenCredential
from azure.identity import DefaultAzureCredential

logger = logging.getLogger(__name__)

# OAuth resource the Azure Maps RBAC layer expects tokens for.
AZURE_MAPS_SCOPE = "https://atlas.microsoft.com/.default"


def build_credential(managed_identity_client_id: Optional[str] = None) -> DefaultAzureCredential:
    """Create the credential chain used to resolve Azure Maps tokens.

    When a user-assigned managed identity client id is supplied it is preferred;
    otherwise the ambient chain (environment, developer login, platform-assigned
    managed identity) is used.
    """
    if managed_identity_client_id and managed_identity_client_id.strip():
        logger.info(f"Using user-assigned managed identity {managed_identity_client_id.strip()}")
        return DefaultAzureCredential(managed_identity_client_id=managed_identity_client_id.strip())
    logger.info("Using the default Azure credential chain")
    return DefaultAzureCredential()


class MapsTokenProvider:
    """
    Issues bearer tokens for Azure Maps from a single long-lived credential.

    Tokens are never stored here. Each call goes back to the credential, which
    applies its own in-memory caching policy.
    """

    def __init__(self, credential: TokenCredential, scope: str = AZURE_MAPS_SCOPE):
        self._credential = credential
        self.scope = scope

    @classmethod
    def from_managed_identity(cls, managed_identity_client_id: Optional[str] = None) -> "MapsTokenProvider":
        return cls(build_credential(managed_identity_client_id))

    def get_token(self) -> str:
        """
        Returns a bearer token for the Azure Maps scope.

        Raises azure.identity.CredentialUnavailableError when no credential in
        the chain can authenticate; callers report it without retrying.
        """
        access_token = self._credential.get_token(self.scope)
        logger.debug(f"Acquired Azure Maps token expiring at {access_token.expires_on}")
        return access_token.token

    def close(self) -> None:
        close = getattr(self._credential, "close", None)
        if callable(close):
            close()
