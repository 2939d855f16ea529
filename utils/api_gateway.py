import json
import logging
from typing import Any, Dict, Optional
import httpx

from utils.environment import get_gateway_timeout, get_script_url, is_script_url_configured

logger = logging.getLogger(__name__)

UNKNOWN_SERVER_ERROR = "An unknown server error occurred."
NETWORK_ERROR_MESSAGE = (
    "Network error: could not reach the server. Check your internet connection, "
    "make sure SHEETS_SCRIPT_URL is correct and that the Apps Script web app is deployed and accessible."
)
MISSING_URL_MESSAGE = (
    "The Google Apps Script URL is not configured. Deploy the script and set "
    "SHEETS_SCRIPT_URL in the environment to continue."
)


class GatewayError(RuntimeError):
    """Base class for failures talking to the sheet endpoint."""


class ConfigurationError(GatewayError):
    pass


class NetworkError(GatewayError):
    pass


class ServerError(GatewayError):
    """The endpoint answered with status "error" or an unusable payload."""


def build_client(timeout: Optional[float] = None) -> httpx.AsyncClient:
    """
    Create the AsyncClient used for the sheet endpoint.

    Apps Script web apps answer POSTs with a 302 to googleusercontent.com,
    so redirects must be followed.
    """
    read_timeout = timeout if timeout is not None else get_gateway_timeout()
    return httpx.AsyncClient(
        headers={"Accept": "application/json"},
        timeout=httpx.Timeout(connect=10, read=read_timeout, write=30, pool=30),
        limits=httpx.Limits(max_keepalive_connections=8, max_connections=32),
        follow_redirects=True,
        http2=True,
    )


class ApiGateway:
    """
    Single entry point to the spreadsheet-backed endpoint.

    Every operation is one POST of {"action", "payload"} answered by a
    {"status", "data", "message"} envelope.
    """

    def __init__(self, url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.url = url if url is not None else get_script_url()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_client()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send one action to the endpoint and return the envelope's data.

        Raises:
            ConfigurationError: SHEETS_SCRIPT_URL is unset, nothing was sent
            NetworkError: the request never completed
            ServerError: the endpoint reported status "error"
        """
        if not is_script_url_configured(self.url):
            raise ConfigurationError(MISSING_URL_MESSAGE)

        body: Dict[str, Any] = {"action": action}
        if payload is not None:
            body["payload"] = payload

        logger.debug("gateway call action=%s", action)
        try:
            # text/plain keeps the browser-style simple request Apps Script expects
            r = await self.client.post(
                self.url,
                content=json.dumps(body),
                headers={"Content-Type": "text/plain;charset=utf-8"},
            )
            # Apps Script can return 200 OK with an error in the body, so parse it regardless
            result = r.json()

            if not isinstance(result, dict):
                raise ServerError(UNKNOWN_SERVER_ERROR)
            if result.get("status") == "error":
                raise ServerError(result.get("message") or UNKNOWN_SERVER_ERROR)

            return result.get("data")
        except httpx.TransportError as e:
            logger.error("API call failed for action %r: %s", action, e)
            raise NetworkError(NETWORK_ERROR_MESSAGE) from e
        except Exception as e:
            logger.error("API call failed for action %r: %s", action, e)
            raise
