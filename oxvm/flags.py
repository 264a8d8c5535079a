"""Named driver options, their environment fallbacks, and defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_SSH_USER = 'oxide'
DEFAULT_SSH_PORT = 22
DEFAULT_VCPUS = 2
DEFAULT_MEMORY = '4 GiB'
DEFAULT_BOOT_DISK_SIZE = '20 GiB'
DEFAULT_VPC = 'default'
DEFAULT_SUBNET = 'default'
DEFAULT_USER_AGENT = 'Oxide Rancher Machine Driver'

FLAG_HOST = 'oxide-host'
FLAG_TOKEN = 'oxide-token'
FLAG_PROJECT = 'oxide-project'
FLAG_VCPUS = 'oxide-vcpus'
FLAG_MEMORY = 'oxide-memory'
FLAG_BOOT_DISK_SIZE = 'oxide-boot-disk-size'
FLAG_BOOT_DISK_IMAGE_ID = 'oxide-boot-disk-image-id'
FLAG_ADDITIONAL_DISK = 'oxide-additional-disk'
FLAG_EXTERNAL_IP = 'oxide-external-ip'
FLAG_VPC = 'oxide-vpc'
FLAG_SUBNET = 'oxide-subnet'
FLAG_USER_DATA_FILE = 'oxide-user-data-file'
FLAG_SSH_USER = 'oxide-ssh-user'
FLAG_SSH_PUBLIC_KEY = 'oxide-ssh-public-key'
FLAG_ANTI_AFFINITY_GROUP = 'oxide-anti-affinity-group'
FLAG_USER_AGENT = 'oxide-user-agent'

REQUIRED_FLAGS = (
    FLAG_HOST,
    FLAG_TOKEN,
    FLAG_PROJECT,
    FLAG_BOOT_DISK_IMAGE_ID,
)


@dataclass(frozen=True)
class Flag:
    name: str
    usage: str
    kind: str = 'string'
    env_var: str = ''
    default: Any = None

    @property
    def dest(self) -> str:
        """Attribute style name, e.g. ``boot_disk_size``."""
        return self.name.removeprefix('oxide-').replace('-', '_')


CREATE_FLAGS: list[Flag] = [
    Flag(
        FLAG_HOST,
        'Oxide silo domain name (e.g., https://silo01.oxide.example.com). '
        'This is `OXIDE_HOST` when authenticating via the Oxide CLI.',
        env_var='OXIDE_HOST',
    ),
    Flag(
        FLAG_TOKEN,
        'Oxide API token. This is `OXIDE_TOKEN` when authenticating via the Oxide CLI.',
        env_var='OXIDE_TOKEN',
    ),
    Flag(
        FLAG_PROJECT,
        'Oxide project to create instances within.',
        env_var='OXIDE_PROJECT',
    ),
    # Instance hardware.
    Flag(
        FLAG_VCPUS,
        'Number of vCPUs to give the instance.',
        kind='int',
        env_var='OXIDE_VCPUS',
        default=DEFAULT_VCPUS,
    ),
    Flag(
        FLAG_MEMORY,
        'Amount of memory, in bytes, to give the instance. Supports a unit suffix (e.g., 4 GiB).',
        env_var='OXIDE_MEMORY',
        default=DEFAULT_MEMORY,
    ),
    # Boot disk.
    Flag(
        FLAG_BOOT_DISK_SIZE,
        "Size of the instance's boot disk, in bytes. Supports a unit suffix (e.g., 20 GiB).",
        env_var='OXIDE_BOOT_DISK_SIZE',
        default=DEFAULT_BOOT_DISK_SIZE,
    ),
    Flag(
        FLAG_BOOT_DISK_IMAGE_ID,
        "Image ID to use for the instance's boot disk.",
        env_var='OXIDE_BOOT_DISK_IMAGE_ID',
    ),
    Flag(
        FLAG_ADDITIONAL_DISK,
        'Additional disks to attach to the instance in the format `SIZE[,LABEL]` '
        'where `SIZE` is the disk size in bytes and `LABEL` is an arbitrary string '
        'used within the disk name for identification. `SIZE` supports a unit '
        'suffix (e.g., 20 GiB).',
        kind='list',
    ),
    Flag(
        FLAG_EXTERNAL_IP,
        'External IPs for the instance in the format `TYPE,NAME_OR_ID` where `TYPE` '
        'is `ephemeral` (`NAME_OR_ID` is an IP pool) or `floating` (`NAME_OR_ID` '
        'is an existing floating IP).',
        kind='list',
    ),
    # Networking.
    Flag(
        FLAG_VPC,
        "VPC name for the instance's network interface.",
        env_var='OXIDE_VPC',
        default=DEFAULT_VPC,
    ),
    Flag(
        FLAG_SUBNET,
        "Subnet name for the instance's network interface.",
        env_var='OXIDE_SUBNET',
        default=DEFAULT_SUBNET,
    ),
    Flag(
        FLAG_USER_DATA_FILE,
        'Path to file containing user data for the instance.',
        env_var='OXIDE_USER_DATA_FILE',
    ),
    # SSH information.
    Flag(
        FLAG_SSH_USER,
        'User to use when connecting to the instance via SSH.',
        env_var='OXIDE_SSH_USER',
        default=DEFAULT_SSH_USER,
    ),
    Flag(
        FLAG_SSH_PUBLIC_KEY,
        'Additional SSH public key names or IDs to inject into the instance.',
        kind='list',
        env_var='OXIDE_ADDITIONAL_SSH_PUBLIC_KEY_IDS',
    ),
    Flag(
        FLAG_ANTI_AFFINITY_GROUP,
        'Anti-affinity groups the instance will be a member of. The values can '
        'be IDs or names of anti-affinity groups.',
        kind='list',
    ),
    Flag(
        FLAG_USER_AGENT,
        'Custom user agent string for API requests.',
        env_var='OXIDE_USER_AGENT',
        default=DEFAULT_USER_AGENT,
    ),
]

FLAGS_BY_NAME = {f.name: f for f in CREATE_FLAGS}


def _is_unset(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _env_value(flag: Flag, environ: Mapping[str, str]) -> Any:
    if not flag.env_var:
        return None
    raw = environ.get(flag.env_var, '')
    if not raw.strip():
        return None
    if flag.kind == 'list':
        return [item.strip() for item in raw.split(',') if item.strip()]
    return raw


def resolve_options(
    raw: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> dict[str, Any]:
    """
    Resolve every known option from explicit values, then env, then defaults.

    Keys that are not driver options are dropped. List options always come
    back as lists of strings.

    Example:
        >>> from oxvm.flags import resolve_options
        >>> opts = resolve_options({'oxide-vpc': '', 'bogus': 1}, environ={'OXIDE_VPC': 'prod'})
        >>> opts['oxide-vpc'], opts['oxide-subnet'], 'bogus' in opts
        ('prod', 'default', False)
    """
    if environ is None:
        environ = os.environ
    resolved: dict[str, Any] = {}
    for flag in CREATE_FLAGS:
        value = raw.get(flag.name)
        if _is_unset(value):
            value = _env_value(flag, environ)
        if _is_unset(value):
            value = flag.default
        if flag.kind == 'list':
            if value is None:
                value = []
            elif isinstance(value, str):
                value = [value]
            else:
                value = [str(v) for v in value]
        resolved[flag.name] = value
    return resolved
