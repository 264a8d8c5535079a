"""Tests for the Oxide HTTP client using httpx mock transports."""

from __future__ import annotations

import json

import httpx
import pytest

from oxvm.client import OxideClient
from oxvm.errors import RemoteOperationError


def _client(handler, **kwargs) -> OxideClient:
    return OxideClient(
        'silo.example.com',
        'tok',
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_requests_carry_auth_and_user_agent() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={'id': 'i-1', 'run_state': 'stopped'})

    client = _client(handler, user_agent='custom-agent/1.0')
    assert client.host == 'https://silo.example.com'
    assert client.instance_view('i-1')['run_state'] == 'stopped'
    req = seen[0]
    assert req.method == 'GET'
    assert req.url.path == '/v1/instances/i-1'
    assert req.headers['Authorization'] == 'Bearer tok'
    assert req.headers['User-Agent'] == 'custom-agent/1.0'


def test_instance_create_posts_body_with_project() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={'id': 'i-9', 'boot_disk_id': 'd-1'})

    client = _client(handler)
    out = client.instance_create('proj', {'name': 'bob', 'start': False})
    assert out == {'id': 'i-9', 'boot_disk_id': 'd-1'}
    req = seen[0]
    assert req.method == 'POST'
    assert req.url.params['project'] == 'proj'
    assert json.loads(req.content) == {'name': 'bob', 'start': False}


def test_list_all_pages_follows_next_page() -> None:
    pages = {
        None: {'items': [{'id': 'nic-1'}, {'id': 'nic-2'}], 'next_page': 'p2'},
        'p2': {'items': [{'id': 'nic-3'}], 'next_page': 'p3'},
        'p3': {'items': [], 'next_page': None},
    }
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params)
        return httpx.Response(200, json=pages[request.url.params.get('page_token')])

    client = _client(handler)
    nics = client.instance_network_interface_list_all('i-1')
    assert [n['id'] for n in nics] == ['nic-1', 'nic-2', 'nic-3']
    assert len(seen) == 3
    assert all(p['instance'] == 'i-1' for p in seen)
    assert seen[1]['page_token'] == 'p2'


def test_delete_with_empty_body_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == 'DELETE'
        assert request.url.path == '/v1/me/ssh-keys/key-1'
        return httpx.Response(204)

    assert _client(handler).current_user_ssh_key_delete('key-1') is None


def test_error_response_raises_remote_operation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404,
            json={
                'request_id': 'req-7',
                'error_code': 'ObjectNotFound',
                'message': 'not found: instance with id "i-1"',
            },
        )

    with pytest.raises(RemoteOperationError) as info:
        _client(handler).instance_view('i-1')
    err = info.value
    assert err.status_code == 404
    assert err.error_code == 'ObjectNotFound'
    assert err.request_id == 'req-7'
    assert 'not found' in str(err)


def test_transport_error_raises_remote_operation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError('connection refused', request=request)

    with pytest.raises(RemoteOperationError, match='connection refused'):
        _client(handler).instance_stop('i-1')


def test_non_json_success_body_raises_remote_operation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='<html>gateway</html>')

    with pytest.raises(RemoteOperationError, match='invalid JSON body') as info:
        _client(handler).instance_view('i-1')
    assert info.value.status_code == 200
    assert isinstance(info.value.__cause__, ValueError)


def test_close_releases_http_client() -> None:
    client = _client(lambda request: httpx.Response(204))
    with client:
        pass
    assert client._http.is_closed


def test_disk_endpoints() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == 'DELETE':
            return httpx.Response(204)
        return httpx.Response(200, json={'id': 'd-5'})

    client = _client(handler)
    client.disk_create('proj', {'name': 'disk-x', 'size': 1024})
    client.instance_disk_attach('i-1', 'd-5')
    client.disk_delete('d-5')
    assert seen == [
        ('POST', '/v1/disks'),
        ('POST', '/v1/instances/i-1/disks/attach'),
        ('DELETE', '/v1/disks/d-5'),
    ]
