"""Tests for persisting driver state."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from oxvm.config import InstanceConfig
from oxvm.driver import Driver
from oxvm.flags import (
    FLAG_ADDITIONAL_DISK,
    FLAG_BOOT_DISK_IMAGE_ID,
    FLAG_EXTERNAL_IP,
    FLAG_HOST,
    FLAG_PROJECT,
    FLAG_TOKEN,
    FLAG_VCPUS,
)
from oxvm.store import (
    _toml_escape,
    dump_toml,
    load_machine,
    save_machine,
    state_path,
)


def _driver(tmp_path: Path) -> Driver:
    driver = Driver('vm-a', tmp_path)
    driver.set_config_from_flags(
        {
            FLAG_HOST: 'silo.example.com',
            FLAG_TOKEN: 'tok"en',
            FLAG_PROJECT: 'proj',
            FLAG_BOOT_DISK_IMAGE_ID: 'img',
            FLAG_VCPUS: '4',
            FLAG_ADDITIONAL_DISK: ['1 GiB,scratch', '2GiB'],
            FLAG_EXTERNAL_IP: ['floating,fip-1'],
        },
        environ={},
    )
    driver.runtime.instance_id = 'inst-1'
    driver.runtime.boot_disk_id = 'boot-1'
    driver.runtime.ssh_public_key_id = 'key-1'
    driver.runtime.additional_disk_ids = ['d-1', 'd-2']
    driver.base.ip_address = '10.0.0.9'
    return driver


def test_save_load_roundtrip(tmp_path: Path) -> None:
    driver = _driver(tmp_path)
    driver.get_ssh_key_path()
    fpath = save_machine(driver)
    assert fpath == state_path(tmp_path, 'vm-a')
    assert fpath == tmp_path / 'machines' / 'vm-a' / 'config.toml'

    loaded = load_machine(tmp_path, 'vm-a')
    assert loaded.config == driver.config
    assert loaded.runtime == driver.runtime
    assert loaded.base == driver.base
    assert loaded.config.vcpus == 4
    assert loaded.config.token == 'tok"en'
    assert [d.label for d in loaded.config.additional_disks] == [
        'scratch',
        'additional',
    ]
    assert loaded.config.external_ips[0].name_or_id == 'fip-1'


def test_saved_state_is_private(tmp_path: Path) -> None:
    fpath = save_machine(_driver(tmp_path))
    assert stat.S_IMODE(fpath.stat().st_mode) == 0o600


def test_dump_toml_sections(tmp_path: Path) -> None:
    text = dump_toml(_driver(tmp_path))
    assert '[machine]' in text
    assert '[config]' in text
    assert '[runtime]' in text
    assert 'additional_disks = ["1073741824,scratch", "2147483648,additional"]' in text
    assert 'additional_disk_ids = ["d-1", "d-2"]' in text


def test_load_missing_machine(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match='oxvm create'):
        load_machine(tmp_path, 'nope')


def test_control_characters_survive_roundtrip(tmp_path: Path) -> None:
    driver = Driver('vm-c', tmp_path)
    driver.config = InstanceConfig(
        host='silo',
        user_agent='ua\nline2\r\t\x01\x7f',
        ssh_public_keys=('k\n1',),
    )
    save_machine(driver)
    loaded = load_machine(tmp_path, 'vm-c')
    assert loaded.config.user_agent == 'ua\nline2\r\t\x01\x7f'
    assert loaded.config.ssh_public_keys == ('k\n1',)


def test_toml_escape() -> None:
    assert _toml_escape('a"b\\c') == 'a\\"b\\\\c'
    assert _toml_escape('x\ny\x1f') == 'x\\ny\\u001F'
