"""Persist a machine's driver state as TOML under the store path."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import ubelt as ub

from .config import InstanceConfig
from .driver import BaseDriver, Driver, RuntimeState, machine_dir
from .specs import AdditionalDisk, ExternalIP

STATE_FILENAME = 'config.toml'

_TOML_ESCAPES = {
    '\\': '\\\\',
    '"': '\\"',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}


def default_store_path() -> Path:
    return Path(ub.Path.appdir('oxvm', type='data').ensuredir())


def state_path(store_path: str | Path, machine_name: str) -> Path:
    return machine_dir(store_path, machine_name) / STATE_FILENAME


def _toml_escape(s: str) -> str:
    # Basic strings may not hold raw control characters.
    out = []
    for ch in s:
        if ch in _TOML_ESCAPES:
            out.append(_TOML_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f'\\u{ord(ch):04X}')
        else:
            out.append(ch)
    return ''.join(out)


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, int):
        lines.append(f'{key} = {val}')
    elif isinstance(val, (list, tuple)):
        parts = [f'"{_toml_escape(str(item))}"' for item in val]
        lines.append(f'{key} = [{", ".join(parts)}]')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def dump_toml(driver: Driver) -> str:
    config = asdict(driver.config)
    # Compound specs are stored in their option syntax.
    config['additional_disks'] = [
        f'{d.size},{d.label}' for d in driver.config.additional_disks
    ]
    config['external_ips'] = [
        f'{e.kind},{e.name_or_id}' for e in driver.config.external_ips
    ]
    sections: dict[str, dict[str, Any]] = {
        'machine': asdict(driver.base),
        'config': config,
        'runtime': asdict(driver.runtime),
    }
    lines: list[str] = []
    for section, body in sections.items():
        lines.append(f'[{section}]')
        for k, v in body.items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def _fill(obj: object, body: Any) -> None:
    if not isinstance(body, dict):
        return
    for k, v in body.items():
        if hasattr(obj, k):
            setattr(obj, k, v)


def save_machine(driver: Driver) -> Path:
    """Write the driver state; the file holds the API token so it is 0600."""
    fpath = state_path(driver.base.store_path, driver.get_machine_name())
    fpath.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(fpath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as file:
        file.write(dump_toml(driver))
    return fpath


def load_machine(
    store_path: str | Path, machine_name: str, **driver_kwargs: Any
) -> Driver:
    fpath = state_path(store_path, machine_name)
    if not fpath.exists():
        raise FileNotFoundError(
            f'No state for machine {machine_name!r} at {fpath}. '
            'Run `oxvm create` first.'
        )
    raw = tomllib.loads(fpath.read_text(encoding='utf-8'))
    driver = Driver(machine_name, store_path, **driver_kwargs)

    base = BaseDriver()
    _fill(base, raw.get('machine'))
    base.machine_name = machine_name
    base.store_path = str(store_path)
    driver.base = base

    config_raw = dict(raw.get('config') or {})
    disks = []
    for item in config_raw.pop('additional_disks', []):
        size, label = str(item).split(',', 1)
        disks.append(AdditionalDisk(size=int(size), label=label))
    ext_ips = []
    for item in config_raw.pop('external_ips', []):
        kind, name_or_id = str(item).split(',', 1)
        ext_ips.append(ExternalIP(kind=kind, name_or_id=name_or_id))
    known = {f.name for f in fields(InstanceConfig)}
    values = {k: v for k, v in config_raw.items() if k in known}
    for key in ('ssh_public_keys', 'anti_affinity_groups'):
        if key in values:
            values[key] = tuple(values[key])
    driver.config = InstanceConfig(
        additional_disks=tuple(disks), external_ips=tuple(ext_ips), **values
    )

    runtime = RuntimeState()
    _fill(runtime, raw.get('runtime'))
    runtime.additional_disk_ids = list(runtime.additional_disk_ids)
    driver.runtime = runtime
    return driver
