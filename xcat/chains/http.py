"""
httpx transport for stellar_sdk.Server.
"""

from typing import Any, Dict, Optional

import httpx
from stellar_sdk.client.base_sync_client import BaseSyncClient
from stellar_sdk.client.response import Response
from stellar_sdk.exceptions import ConnectionError, ContentSizeLimitExceededError


class HttpxClient(BaseSyncClient):
    """
    BaseSyncClient over an httpx.Client.

    Transport failures surface as stellar_sdk ConnectionError, the way the
    SDK's own clients report them. Streaming is not supported.
    """

    def __init__(self, http: httpx.Client = None, timeout: float = 15.0):
        self._http = http or httpx.Client(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    @staticmethod
    def _response(resp: httpx.Response) -> Response:
        return Response(
            status_code=resp.status_code,
            text=resp.text,
            headers=dict(resp.headers),
            url=str(resp.url),
        )

    def get(self, url: str, params: Optional[Dict[str, str]] = None,
            max_content_size: Optional[int] = None) -> Response:
        try:
            resp = self._http.get(url, params=params)
        except httpx.HTTPError as err:
            raise ConnectionError(err) from err
        if max_content_size is not None and len(resp.content) > max_content_size:
            raise ContentSizeLimitExceededError(limit=max_content_size, content_size=len(resp.content))
        return self._response(resp)

    def post(self, url: str, data: Optional[Dict[str, str]] = None,
             json_data: Optional[Dict[str, Any]] = None) -> Response:
        try:
            resp = self._http.post(url, data=data, json=json_data)
        except httpx.HTTPError as err:
            raise ConnectionError(err) from err
        return self._response(resp)

    def stream(self, url: str, params: Optional[Dict[str, str]] = None):
        raise NotImplementedError("streaming is not supported by HttpxClient")

    def close(self):
        self._http.close()
