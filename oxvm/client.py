"""Minimal synchronous client for the Oxide HTTP API."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from .errors import RemoteOperationError

log = logger

DEFAULT_TIMEOUT_S = 60.0
PAGE_LIMIT = 100


def _normalize_host(host: str) -> str:
    host = host.strip().rstrip('/')
    if '://' not in host:
        host = 'https://' + host
    return host


class OxideClient:
    """
    Thin wrapper over :class:`httpx.Client` for the endpoints the driver uses.

    Every method returns the decoded JSON body (or ``None`` for empty
    responses) and raises :class:`~oxvm.errors.RemoteOperationError` for
    transport failures and non-2xx responses.

    Example:
        >>> import httpx
        >>> from oxvm.client import OxideClient
        >>> def handler(request):
        ...     return httpx.Response(200, json={'id': 'i-1', 'run_state': 'running'})
        >>> client = OxideClient('silo.example.com', 'tok', transport=httpx.MockTransport(handler))
        >>> client.instance_view('i-1')['run_state']
        'running'
    """

    def __init__(
        self,
        host: str,
        token: str,
        *,
        user_agent: str = '',
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
        }
        if user_agent:
            headers['User-Agent'] = user_agent
        self.host = _normalize_host(host)
        self._http = httpx.Client(
            base_url=self.host,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> 'OxideClient':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        log.opt(depth=1).debug('API {} {} params={}', method, path, params or {})
        try:
            resp = self._http.request(method, path, params=params, json=json)
        except httpx.HTTPError as ex:
            raise RemoteOperationError(
                f'{method} {path} failed: {ex}'
            ) from ex
        if resp.is_error:
            raise _error_from_response(method, path, resp)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as ex:
            raise RemoteOperationError(
                f'{method} {path} returned an invalid JSON body',
                status_code=resp.status_code,
            ) from ex

    def _list_all_pages(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        query = dict(params or {})
        query['limit'] = PAGE_LIMIT
        while True:
            page = self._request('GET', path, params=query) or {}
            items.extend(page.get('items', []))
            token = page.get('next_page')
            if not token:
                return items
            query['page_token'] = token

    # Instances

    def instance_create(self, project: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            'POST', '/v1/instances', params={'project': project}, json=body
        )

    def instance_view(self, instance: str) -> dict[str, Any]:
        return self._request('GET', f'/v1/instances/{instance}')

    def instance_delete(self, instance: str) -> None:
        self._request('DELETE', f'/v1/instances/{instance}')

    def instance_start(self, instance: str) -> dict[str, Any]:
        return self._request('POST', f'/v1/instances/{instance}/start')

    def instance_stop(self, instance: str) -> dict[str, Any]:
        return self._request('POST', f'/v1/instances/{instance}/stop')

    def instance_reboot(self, instance: str) -> dict[str, Any]:
        return self._request('POST', f'/v1/instances/{instance}/reboot')

    def instance_network_interface_list_all(
        self, instance: str
    ) -> list[dict[str, Any]]:
        return self._list_all_pages(
            '/v1/network-interfaces', params={'instance': instance}
        )

    def instance_disk_list_all(self, instance: str) -> list[dict[str, Any]]:
        return self._list_all_pages(f'/v1/instances/{instance}/disks')

    def instance_disk_attach(self, instance: str, disk: str) -> dict[str, Any]:
        return self._request(
            'POST', f'/v1/instances/{instance}/disks/attach', json={'disk': disk}
        )

    # Disks

    def disk_create(self, project: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            'POST', '/v1/disks', params={'project': project}, json=body
        )

    def disk_delete(self, disk: str) -> None:
        self._request('DELETE', f'/v1/disks/{disk}')

    # SSH keys of the authenticated user

    def current_user_ssh_key_create(
        self, name: str, public_key: str, *, description: str = ''
    ) -> dict[str, Any]:
        body = {
            'name': name,
            'description': description,
            'public_key': public_key,
        }
        return self._request('POST', '/v1/me/ssh-keys', json=body)

    def current_user_ssh_key_delete(self, ssh_key: str) -> None:
        self._request('DELETE', f'/v1/me/ssh-keys/{ssh_key}')


def _error_from_response(
    method: str, path: str, resp: httpx.Response
) -> RemoteOperationError:
    error_code = ''
    request_id = ''
    message = resp.text.strip()
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error_code = str(data.get('error_code') or '')
        request_id = str(data.get('request_id') or '')
        message = str(data.get('message') or message)
    detail = f'{method} {path} failed: {resp.status_code} {resp.reason_phrase}'
    if error_code:
        detail += f' ({error_code})'
    if message:
        detail += f': {message}'
    if request_id:
        detail += f' [request_id={request_id}]'
    return RemoteOperationError(
        detail,
        status_code=resp.status_code,
        error_code=error_code,
        request_id=request_id,
    )
