"""Driver configuration record and validation of raw option values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from loguru import logger

from .errors import (
    ConfigErrors,
    OptionParseError,
    RequiredOptionError,
    SizeError,
    SpecParseError,
)
from .flags import (
    DEFAULT_BOOT_DISK_SIZE,
    DEFAULT_MEMORY,
    DEFAULT_SSH_USER,
    DEFAULT_SUBNET,
    DEFAULT_USER_AGENT,
    DEFAULT_VCPUS,
    DEFAULT_VPC,
    FLAG_ADDITIONAL_DISK,
    FLAG_ANTI_AFFINITY_GROUP,
    FLAG_BOOT_DISK_IMAGE_ID,
    FLAG_BOOT_DISK_SIZE,
    FLAG_EXTERNAL_IP,
    FLAG_HOST,
    FLAG_MEMORY,
    FLAG_PROJECT,
    FLAG_SSH_PUBLIC_KEY,
    FLAG_SSH_USER,
    FLAG_SUBNET,
    FLAG_TOKEN,
    FLAG_USER_AGENT,
    FLAG_USER_DATA_FILE,
    FLAG_VCPUS,
    FLAG_VPC,
    REQUIRED_FLAGS,
    resolve_options,
)
from .sizes import parse_size
from .specs import AdditionalDisk, ExternalIP, parse_additional_disk, parse_external_ip

log = logger


_CONTROL_RE = re.compile(r'[\x00-\x1f\x7f]')


@dataclass(frozen=True)
class InstanceConfig:
    """Validated driver configuration. Built once by :func:`validate_config`."""

    host: str = ''
    token: str = ''
    project: str = ''
    vcpus: int = DEFAULT_VCPUS
    memory: int = parse_size(DEFAULT_MEMORY)
    boot_disk_size: int = parse_size(DEFAULT_BOOT_DISK_SIZE)
    boot_disk_image_id: str = ''
    vpc: str = DEFAULT_VPC
    subnet: str = DEFAULT_SUBNET
    user_data_file: str = ''
    ssh_user: str = DEFAULT_SSH_USER
    ssh_public_keys: tuple[str, ...] = ()
    additional_disks: tuple[AdditionalDisk, ...] = ()
    external_ips: tuple[ExternalIP, ...] = ()
    anti_affinity_groups: tuple[str, ...] = ()
    user_agent: str = DEFAULT_USER_AGENT


def _clean(value: Any) -> str:
    """Strip surrounding whitespace and drop control characters."""
    return _CONTROL_RE.sub('', str(value or '')).strip()


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f'invalid integer {value!r}')
    if isinstance(value, int):
        out = value
    else:
        text = str(value).strip()
        try:
            out = int(text)
        except ValueError:
            raise ValueError(f'invalid integer {text!r}') from None
    if out <= 0:
        raise ValueError(f'must be positive, got {out}')
    return out


def _parse_positive_size(value: Any) -> int:
    size = parse_size(str(value))
    if size <= 0:
        raise SizeError(f'size must be positive, got {value!r}')
    return size


def validate_config(
    raw: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> InstanceConfig:
    """
    Build an :class:`InstanceConfig` from raw option values.

    Every required option and every parseable option is checked before
    returning; all problems are raised together as one
    :class:`~oxvm.errors.ConfigErrors`. Control characters are dropped from
    plain string options.

    Args:
        raw: option name to value, e.g. ``{'oxide-host': 'https://...'}``.
            Unknown keys are ignored.
        environ: environment used for fallbacks, defaults to ``os.environ``.

    Example:
        >>> from oxvm.config import validate_config
        >>> from oxvm.errors import ConfigErrors, RequiredOptionError
        >>> try:
        ...     validate_config({}, environ={})
        ... except ConfigErrors as ex:
        ...     print(sorted(e.option for e in ex.of_type(RequiredOptionError)))
        ['oxide-boot-disk-image-id', 'oxide-host', 'oxide-project', 'oxide-token']
    """
    opts = resolve_options(raw, environ)
    errors: list[Exception] = []

    for name in REQUIRED_FLAGS:
        if not _clean(opts[name]):
            errors.append(RequiredOptionError(name))

    values: dict[str, Any] = {
        'host': _clean(opts[FLAG_HOST]),
        'token': _clean(opts[FLAG_TOKEN]),
        'project': _clean(opts[FLAG_PROJECT]),
        'boot_disk_image_id': _clean(opts[FLAG_BOOT_DISK_IMAGE_ID]),
        'vpc': _clean(opts[FLAG_VPC]),
        'subnet': _clean(opts[FLAG_SUBNET]),
        'user_data_file': _clean(opts[FLAG_USER_DATA_FILE]),
        'ssh_user': _clean(opts[FLAG_SSH_USER]),
        'user_agent': _clean(opts[FLAG_USER_AGENT]),
        'ssh_public_keys': tuple(
            k for k in (_clean(v) for v in opts[FLAG_SSH_PUBLIC_KEY]) if k
        ),
        'anti_affinity_groups': tuple(
            g for g in (_clean(v) for v in opts[FLAG_ANTI_AFFINITY_GROUP]) if g
        ),
    }

    try:
        values['vcpus'] = _parse_int(opts[FLAG_VCPUS])
    except ValueError as ex:
        errors.append(OptionParseError(FLAG_VCPUS, ex))

    for name, key in ((FLAG_MEMORY, 'memory'), (FLAG_BOOT_DISK_SIZE, 'boot_disk_size')):
        try:
            values[key] = _parse_positive_size(opts[name])
        except SizeError as ex:
            errors.append(OptionParseError(name, ex))

    disks = []
    for text in opts[FLAG_ADDITIONAL_DISK]:
        try:
            disks.append(parse_additional_disk(_clean(text)))
        except SpecParseError as ex:
            errors.append(OptionParseError(FLAG_ADDITIONAL_DISK, ex))
    values['additional_disks'] = tuple(disks)

    ext_ips = []
    for text in opts[FLAG_EXTERNAL_IP]:
        try:
            ext_ips.append(parse_external_ip(_clean(text)))
        except SpecParseError as ex:
            errors.append(OptionParseError(FLAG_EXTERNAL_IP, ex))
    values['external_ips'] = tuple(ext_ips)

    if errors:
        for err in errors:
            log.debug('Config problem: {}', err)
        log.warning('Driver configuration is invalid ({} problems)', len(errors))
        raise ConfigErrors(errors)
    cfg = InstanceConfig(**values)
    log.debug(
        'Validated config project={} vcpus={} memory={} boot_disk_size={} disks={} external_ips={}',
        cfg.project,
        cfg.vcpus,
        cfg.memory,
        cfg.boot_disk_size,
        len(cfg.additional_disks),
        len(cfg.external_ips),
    )
    return cfg
