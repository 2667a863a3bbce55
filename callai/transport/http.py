"""HTTP transport for chat completion and key refresh requests."""

import json
from collections.abc import AsyncIterator

import httpx

from callai.config.settings import get_settings
from callai.errors import TransportError
from callai.logging.debug import get_logger
from callai.streaming.payloads import error_message

logger = get_logger("transport")


class ChatTransport:
    """Sends requests through one lazily created ``httpx.AsyncClient``.

    Network failures are translated to ``TransportError`` here, so nothing
    above this layer handles httpx exceptions.
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client: httpx.AsyncClient | None = None
        self._timeout = timeout
        self._transport = transport  # tests inject httpx.MockTransport / ASGITransport

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            timeout = self._timeout if self._timeout is not None else get_settings().request_timeout
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def post_json(self, url: str, body: dict, headers: dict) -> dict:
        """POST a JSON body and return the parsed JSON response.

        Raises:
            TransportError: network failure, non-2xx status or a non-JSON body.
        """
        client = await self._get_client()
        try:
            response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise network_error(e) from e

        if response.is_error:
            raise error_from_response(response.status_code, response.content, response.reason_phrase)

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Upstream returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def open_stream(self, url: str, body: dict, headers: dict) -> httpx.Response:
        """POST a streaming request and return the open response.

        The caller owns the response and must close it; ``response_chunks``
        does so when its iteration ends. A JSON reply to a streaming request
        is an error report, not a stream.
        """
        client = await self._get_client()
        request = client.build_request("POST", url, json=body, headers=headers)
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise network_error(e) from e

        content_type = response.headers.get("content-type", "")
        if response.is_error or content_type.startswith("application/json"):
            try:
                content = await response.aread()
            except httpx.HTTPError as e:
                raise network_error(e) from e
            finally:
                await response.aclose()
            raise error_from_response(response.status_code, content, response.reason_phrase)

        logger.debug(
            "Stream opened",
            extra={"debug_data": {"status_code": response.status_code, "content_type": content_type}},
        )
        return response

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


async def response_chunks(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield raw body chunks; the response is closed when iteration stops."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        raise network_error(e) from e
    finally:
        await response.aclose()


def network_error(exc: httpx.HTTPError) -> TransportError:
    if isinstance(exc, httpx.ConnectError):
        return TransportError("Cannot reach upstream provider", status_code=502)
    if isinstance(exc, httpx.TimeoutException):
        return TransportError("Upstream provider timed out", status_code=504)
    return TransportError(f"Upstream error: {exc}", status_code=502)


def error_from_response(status_code: int, content: bytes, reason: str = "") -> TransportError:
    """Build a TransportError from a raw error response body."""
    text = content.decode("utf-8", errors="replace")
    try:
        body: dict | str = json.loads(text) if text else ""
    except ValueError:
        body = text
    if not isinstance(body, (dict, str)):
        body = text
    return error_from_body(status_code, body, reason)


def error_from_body(status_code: int, body: dict | str, reason: str = "") -> TransportError:
    """Build a TransportError from a decoded error body.

    JSON bodies keep their structure in ``body``; the provider's message is
    pulled from ``error.message``, ``error`` or ``message``. A 2xx reply that
    carries an error object takes its status from ``error.code`` when numeric.
    """
    message = ""
    status = status_code
    if isinstance(body, dict):
        error = body.get("error")
        if error:
            message = error_message(error)
            code = error.get("code") if isinstance(error, dict) else None
            if status < 400 and isinstance(code, int):
                status = code
        elif body.get("message"):
            message = str(body["message"])
    elif body:
        message = body.strip()

    if not message:
        message = f"HTTP error {status_code}" + (f" {reason}" if reason else "")

    return TransportError(message, status_code=status, body=body or None)
