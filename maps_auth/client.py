"""
Python counterpart of ``static/js/site.js``.

Picks the Azure Maps auth strategy from the map element's data attributes and
builds the ``getToken(resolve, reject)`` callback the Web SDK drives. Useful for
scripted consumers of the token endpoint and for exercising the browser
contract without a browser.
"""
import logging
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)

TOKEN_URL = "/api/token"
MAP_ELEMENT_ID = "myMap"
SUBSCRIPTION_KEY_ATTRIBUTE = "data-auth-key"
CLIENT_ID_ATTRIBUTE = "data-auth-clientid"

Resolve = Callable[[str], None]
Reject = Callable[[Exception], None]
TokenCallback = Callable[[Resolve, Reject], None]


class TokenFetchError(Exception):
    """The token endpoint could not be reached or did not return a token."""


@dataclass(frozen=True)
class AuthOptions:
    auth_type: str
    subscription_key: Optional[str] = None
    client_id: Optional[str] = None
    get_token: Optional[TokenCallback] = None

    def to_sdk_options(self) -> Dict[str, Any]:
        """The ``authOptions`` object as the Web SDK expects it."""
        options: Dict[str, Any] = {"authType": self.auth_type}
        if self.subscription_key is not None:
            options["subscriptionKey"] = self.subscription_key
        if self.client_id is not None:
            options["clientId"] = self.client_id
        if self.get_token is not None:
            options["getToken"] = self.get_token
        return options


def fetch_maps_token(http_client: httpx.Client, token_url: str = TOKEN_URL) -> str:
    """Performs a single GET against the token endpoint. No retries."""
    try:
        response = http_client.get(token_url)
    except httpx.HTTPError as e:
        raise TokenFetchError(f"Failed to fetch Azure Maps token: {e}") from e
    if not response.is_success:
        raise TokenFetchError(
            f"Failed to fetch Azure Maps token: Token fetch failed: {response.status_code}"
        )
    return response.text


def make_token_callback(http_client: httpx.Client, token_url: str = TOKEN_URL) -> TokenCallback:
    def get_token(resolve: Resolve, reject: Reject) -> None:
        try:
            token = fetch_maps_token(http_client, token_url)
        except TokenFetchError as e:
            reject(e)
            return
        resolve(token)

    return get_token


def resolve_auth_options(
    attributes: Mapping[str, Optional[str]],
    http_client: Optional[httpx.Client] = None,
    token_url: str = TOKEN_URL,
) -> Optional[AuthOptions]:
    """
    Chooses the auth strategy from the map element's data attributes.

    Returns None, after logging a warning, when no usable attribute is present;
    the map is then left uninitialized. The anonymous strategy fetches tokens
    through ``http_client``, which must carry the session cookie when the
    server requires sign-in.
    """
    if SUBSCRIPTION_KEY_ATTRIBUTE in attributes:
        key = attributes[SUBSCRIPTION_KEY_ATTRIBUTE]
        if not key:
            logger.warning("Azure Maps key missing. Map will not initialize.")
            return None
        return AuthOptions(auth_type="subscriptionKey", subscription_key=key)

    if CLIENT_ID_ATTRIBUTE in attributes:
        client_id = attributes[CLIENT_ID_ATTRIBUTE]
        if not client_id:
            logger.warning("Azure Maps client ID missing. Map will not initialize.")
            return None
        if http_client is None:
            raise ValueError("An HTTP client is required for anonymous authentication.")
        return AuthOptions(
            auth_type="anonymous",
            client_id=client_id,
            get_token=make_token_callback(http_client, token_url),
        )

    logger.warning("No Azure Maps auth attribute found. Map will not initialize.")
    return None


class _MapElementParser(HTMLParser):
    def __init__(self, element_id: str):
        super().__init__()
        self.element_id = element_id
        self.attributes: Optional[Dict[str, Optional[str]]] = None

    def handle_starttag(self, tag, attrs):
        if self.attributes is None:
            found = dict(attrs)
            if found.get("id") == self.element_id:
                self.attributes = found


def read_map_attributes(html: str, element_id: str = MAP_ELEMENT_ID) -> Optional[Dict[str, Optional[str]]]:
    """Attributes of the map host element in a rendered page, or None if absent."""
    parser = _MapElementParser(element_id)
    parser.feed(html)
    parser.close()
    return parser.attributes
