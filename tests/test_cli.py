"""Tests for the oxvm command line."""

from __future__ import annotations

from pathlib import Path

import pytest

from oxvm.cli import main
from oxvm.cli.machine import (
    CreateCLI,
    FlagsCLI,
    RemoveCLI,
    StateCLI,
    _parse_list_arg,
    _raw_options,
)
from oxvm.store import load_machine, state_path


class _Client:
    def __init__(self):
        self.calls = []
        self.run_state = 'running'
        self.closed = 0

    def current_user_ssh_key_create(self, name, public_key, *, description=''):
        self.calls.append('ssh_key_create')
        return {'id': 'key-1'}

    def instance_create(self, project, body):
        self.calls.append('instance_create')
        self.body = body
        return {'id': 'inst-1', 'boot_disk_id': 'boot-1'}

    def instance_network_interface_list_all(self, instance):
        return [{'ip_stack': {'type': 'v4', 'value': {'ip': '10.1.2.3'}}}]

    def instance_disk_list_all(self, instance):
        return [{'id': 'boot-1'}, {'id': 'data-1'}]

    def instance_start(self, instance):
        self.calls.append('start')

    def instance_stop(self, instance):
        self.calls.append('stop')
        self.run_state = 'stopped'

    def instance_view(self, instance):
        return {'id': instance, 'run_state': self.run_state}

    def current_user_ssh_key_delete(self, key):
        self.calls.append('ssh_key_delete')

    def instance_delete(self, instance):
        self.calls.append('instance_delete')

    def disk_delete(self, disk):
        self.calls.append(f'disk_delete:{disk}')

    def close(self):
        self.closed += 1


@pytest.fixture
def fake_client(monkeypatch, tmp_path: Path) -> _Client:
    client = _Client()

    def fake_keygen(path):
        pub = Path(str(path) + '.pub')
        pub.parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_text('PRIVATE', encoding='utf-8')
        pub.write_text('ssh-ed25519 AAAA test\n', encoding='utf-8')
        return pub

    monkeypatch.setattr('oxvm.driver._default_client_factory', lambda cfg: client)
    monkeypatch.setattr('oxvm.driver.generate_ssh_key', fake_keygen)
    for var in ('OXIDE_HOST', 'OXIDE_TOKEN', 'OXIDE_PROJECT', 'OXIDE_BOOT_DISK_IMAGE_ID'):
        monkeypatch.delenv(var, raising=False)
    return client


def test_parse_list_arg() -> None:
    assert _parse_list_arg(' 10GiB,data; ;1GiB;') == ['10GiB,data', '1GiB']
    assert _parse_list_arg('') == []


def test_raw_options_uses_option_names() -> None:
    class Args:
        pass

    args = Args()
    for dest in (
        'host', 'token', 'project', 'vcpus', 'memory', 'boot_disk_size',
        'boot_disk_image_id', 'vpc', 'subnet', 'user_data_file', 'ssh_user',
        'user_agent',
    ):
        setattr(args, dest, '')
    args.host = 'silo'
    args.additional_disk = '1GiB;2GiB,b'
    args.external_ip = ''
    args.ssh_public_key = 'k1'
    args.anti_affinity_group = ''
    raw = _raw_options(args)
    assert raw['oxide-host'] == 'silo'
    assert raw['oxide-additional-disk'] == ['1GiB', '2GiB,b']
    assert raw['oxide-ssh-public-key'] == ['k1']
    assert raw['oxide-external-ip'] == []


def test_create_state_remove_flow(fake_client, tmp_path: Path, capsys) -> None:
    rc = CreateCLI.main(
        argv=False,
        name='vm1',
        store_path=str(tmp_path),
        host='silo.example.com',
        token='tok',
        project='proj',
        boot_disk_image_id='img',
        additional_disk='1GiB,data',
    )
    assert rc == 0
    assert capsys.readouterr().out.strip() == '10.1.2.3'
    assert state_path(tmp_path, 'vm1').exists()
    assert fake_client.body['disks'][0]['name'] == 'disk-00-data-vm1'

    saved = load_machine(tmp_path, 'vm1')
    assert saved.runtime.instance_id == 'inst-1'
    assert saved.runtime.additional_disk_ids == ['data-1']

    StateCLI.main(argv=False, name='vm1', store_path=str(tmp_path))
    assert capsys.readouterr().out.strip() == 'Running'

    assert RemoveCLI.main(argv=False, name='vm1', store_path=str(tmp_path)) == 0
    assert fake_client.calls[-5:] == [
        'stop',
        'ssh_key_delete',
        'instance_delete',
        'disk_delete:boot-1',
        'disk_delete:data-1',
    ]
    assert load_machine(tmp_path, 'vm1').runtime.instance_id == ''
    # One client per command: create, state, remove.
    assert fake_client.closed == 3


def test_create_reports_all_missing_options(fake_client, tmp_path: Path) -> None:
    from oxvm.errors import ConfigErrors

    with pytest.raises(ConfigErrors) as info:
        CreateCLI.main(argv=False, name='vm1', store_path=str(tmp_path), vcpus='zero')
    assert len(info.value) == 5
    assert "failed parsing option 'oxide-vcpus'" in str(info.value)
    assert not state_path(tmp_path, 'vm1').exists()


def test_flags_lists_options(capsys) -> None:
    FlagsCLI.main(argv=False)
    out = capsys.readouterr().out
    assert '--oxide-host [env=OXIDE_HOST]' in out
    assert 'default=4 GiB' in out
    assert '--oxide-anti-affinity-group' in out


def test_main_reports_errors(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as info:
        main(['state', 'missing', '--store_path', str(tmp_path)])
    assert info.value.code == 2
    assert 'ERROR:' in capsys.readouterr().err
