"""Oxide machine driver: create, start/stop, state, and teardown of one instance."""

from __future__ import annotations

import base64
import ipaddress
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from loguru import logger

from .client import OxideClient
from .config import InstanceConfig, validate_config
from .errors import (
    NoNetworkInterfaceError,
    OxVMError,
    PreflightError,
    StopTimeoutError,
)
from .flags import CREATE_FLAGS, DEFAULT_SSH_PORT, DEFAULT_SSH_USER, Flag
from .keys import generate_ssh_key, read_public_key
from .sizes import format_size
from .specs import EXTERNAL_IP_EPHEMERAL, ExternalIP
from .state import MachineState, to_machine_state

log = logger

DRIVER_NAME = 'oxide'
DEFAULT_DESCRIPTION = 'Managed by the Oxide Rancher machine driver.'
DOCKER_PORT = 2376
DISK_BLOCK_SIZE = 4096
SSH_KEY_FILENAME = 'id_ed25519'

DEFAULT_STOP_TIMEOUT_S = 120.0
DEFAULT_POLL_INTERVAL_S = 2.0

ClientFactory = Callable[[InstanceConfig], Any]


def _default_client_factory(cfg: InstanceConfig) -> OxideClient:
    return OxideClient(cfg.host, cfg.token, user_agent=cfg.user_agent)


def machine_dir(store_path: str | Path, machine_name: str) -> Path:
    return Path(store_path) / 'machines' / machine_name


@dataclass
class BaseDriver:
    """Defaults and fallback behavior shared with the host platform."""

    machine_name: str = ''
    store_path: str = ''
    ssh_user: str = DEFAULT_SSH_USER
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_key_path: str = ''
    ip_address: str = ''

    def get_machine_name(self) -> str:
        return self.machine_name

    def resolve_store_path(self, fname: str) -> Path:
        return machine_dir(self.store_path, self.machine_name) / fname

    def get_ssh_key_path(self) -> str:
        if not self.ssh_key_path:
            self.ssh_key_path = str(self.resolve_store_path(SSH_KEY_FILENAME))
        return self.ssh_key_path

    def get_ssh_port(self) -> int:
        return self.ssh_port or DEFAULT_SSH_PORT

    def get_ssh_username(self) -> str:
        return self.ssh_user or DEFAULT_SSH_USER

    def get_ip(self) -> str:
        if not self.ip_address:
            raise OxVMError('IP address is not set')
        return self.ip_address


@dataclass
class RuntimeState:
    """Identifiers of everything create provisioned, used by later operations."""

    instance_id: str = ''
    boot_disk_id: str = ''
    ssh_public_key_id: str = ''
    additional_disk_ids: list[str] = field(default_factory=list)


def _external_ip_params(ext: ExternalIP) -> dict[str, Any]:
    if ext.kind == EXTERNAL_IP_EPHEMERAL:
        return {'type': 'ephemeral', 'pool': ext.name_or_id}
    return {'type': 'floating', 'floating_ip': ext.name_or_id}


def _nic_ipv4(nic: Mapping[str, Any]) -> str:
    """Return the private IPv4 address of a network interface, or ''."""
    stack = nic.get('ip_stack')
    if isinstance(stack, Mapping):
        value = stack.get('value') or {}
        if stack.get('type') == 'v4':
            return str(value.get('ip') or '')
        if stack.get('type') == 'dual_stack':
            return str((value.get('v4') or {}).get('ip') or '')
        return ''
    # Older API versions report a single address directly on the interface.
    return str(nic.get('ip') or '')


class Driver:
    """
    Drive the lifecycle of one Oxide instance for a host orchestration platform.

    The host calls :meth:`set_config_from_flags`, :meth:`pre_create_check`
    and :meth:`create`, then the single step operations, and finally
    :meth:`remove`. Operations are not safe to run concurrently on one
    driver.

    Args:
        machine_name: name of the machine; also the instance name and hostname.
        store_path: directory for the generated SSH key and persisted state.
        client_factory: builds the API client from the config. Defaults to
            :class:`~oxvm.client.OxideClient`.
        sleep: called between state polls while waiting for stop.
        clock: monotonic clock used for the stop deadline.
    """

    def __init__(
        self,
        machine_name: str,
        store_path: str | Path,
        *,
        client_factory: Optional[ClientFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base = BaseDriver(
            machine_name=machine_name,
            store_path=str(store_path),
        )
        self.config = InstanceConfig()
        self.runtime = RuntimeState()
        self.stop_timeout = DEFAULT_STOP_TIMEOUT_S
        self.poll_interval = DEFAULT_POLL_INTERVAL_S
        self._client_factory = client_factory or _default_client_factory
        self._client: Any = None
        self._sleep = sleep
        self._clock = clock

    # Host contract: identity and configuration

    def driver_name(self) -> str:
        return DRIVER_NAME

    def get_create_flags(self) -> list[Flag]:
        return list(CREATE_FLAGS)

    def set_config_from_flags(
        self,
        raw: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = validate_config(raw, environ)
        self.base.ssh_user = self.config.ssh_user or DEFAULT_SSH_USER
        self.base.ssh_port = DEFAULT_SSH_PORT

    def pre_create_check(self) -> None:
        path = self.config.user_data_file
        if path and not Path(path).exists():
            raise PreflightError(f'user data file {path} could not be found')

    # Delegation to the shared defaults

    def get_machine_name(self) -> str:
        return self.base.get_machine_name()

    def get_ip(self) -> str:
        return self.base.get_ip()

    def get_ssh_hostname(self) -> str:
        return self.base.get_ip()

    def get_ssh_key_path(self) -> str:
        return self.base.get_ssh_key_path()

    def get_ssh_port(self) -> int:
        return self.base.get_ssh_port()

    def get_ssh_username(self) -> str:
        return self.base.get_ssh_username()

    # Remote client

    def client(self) -> Any:
        """Return the API client, constructing it on first use."""
        if self._client is None:
            log.debug('Creating Oxide client for host={}', self.config.host)
            self._client = self._client_factory(self.config)
        return self._client

    def close(self) -> None:
        """Release the API client if one was constructed."""
        client, self._client = self._client, None
        close = getattr(client, 'close', None)
        if close is not None:
            close()

    def __enter__(self) -> 'Driver':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # Lifecycle

    def create(self) -> None:
        """
        Create the instance and everything it depends on.

        The instance is created stopped and started as the last step. On
        failure nothing that was already created is cleaned up; the recorded
        identifiers let :meth:`remove` do that later.
        """
        client = self.client()
        cfg = self.config
        name = self.get_machine_name()
        log.info('Creating Oxide instance {} in project {}', name, cfg.project)

        key = self._create_ssh_key()
        self.runtime.ssh_public_key_id = key['id']
        log.debug('Registered SSH key id={}', self.runtime.ssh_public_key_id)

        ssh_public_keys = [self.runtime.ssh_public_key_id, *cfg.ssh_public_keys]

        user_data = b''
        if cfg.user_data_file:
            user_data = Path(cfg.user_data_file).read_bytes()

        body = self._instance_create_body(
            ssh_public_keys=ssh_public_keys,
            user_data=base64.b64encode(user_data).decode('ascii'),
        )
        instance = client.instance_create(cfg.project, body)
        self.runtime.instance_id = instance['id']
        self.runtime.boot_disk_id = instance.get('boot_disk_id') or ''
        log.info(
            'Created instance id={} boot_disk_id={}',
            self.runtime.instance_id,
            self.runtime.boot_disk_id,
        )

        nics = client.instance_network_interface_list_all(self.runtime.instance_id)
        if not nics:
            raise NoNetworkInterfaceError('no valid network interface found')
        # Only the first interface is considered.
        ip = _nic_ipv4(nics[0])
        if not ip:
            raise NoNetworkInterfaceError(
                'no IPv4 address found on network interface'
            )
        self.base.ip_address = ip
        log.debug('Instance {} address {}', name, ip)

        disks = client.instance_disk_list_all(self.runtime.instance_id)
        self.runtime.additional_disk_ids = [
            d['id'] for d in disks if d['id'] != self.runtime.boot_disk_id
        ]
        log.debug('Additional disk ids: {}', self.runtime.additional_disk_ids)

        self.start()
        log.info('Instance {} created and starting at {}', name, ip)

    def start(self) -> None:
        log.debug('Starting instance {}', self.runtime.instance_id)
        self.client().instance_start(self.runtime.instance_id)

    def stop(self) -> None:
        log.debug('Stopping instance {}', self.runtime.instance_id)
        self.client().instance_stop(self.runtime.instance_id)

    def restart(self) -> None:
        log.debug('Rebooting instance {}', self.runtime.instance_id)
        self.client().instance_reboot(self.runtime.instance_id)

    def kill(self) -> None:
        # The API has no forceful stop.
        self.stop()

    def get_state(self) -> MachineState:
        instance = self.client().instance_view(self.runtime.instance_id)
        return to_machine_state(instance.get('run_state'))

    def get_url(self) -> str:
        """Return a Docker-compatible URL for the running instance."""
        current = self.get_state()
        if current != MachineState.RUNNING:
            raise OxVMError(
                f'machine {self.get_machine_name()} is not running (state={current.value})'
            )
        ip = self.get_ip()
        host = ip
        try:
            if ipaddress.ip_address(ip).version == 6:
                host = f'[{ip}]'
        except ValueError:
            pass
        return f'tcp://{host}:{DOCKER_PORT}'

    def remove(self) -> None:
        """
        Stop the instance, wait for it to stop, then delete it and its resources.

        Deletion order is SSH key, instance, boot disk, additional disks.
        The first failure is raised and the remaining deletions are skipped.
        """
        client = self.client()
        rt = self.runtime
        name = self.get_machine_name()
        log.info('Removing Oxide instance {}', name)

        if rt.instance_id:
            self.stop()
            self._wait_for_stopped()
        else:
            log.debug('No instance recorded for {}; skipping stop', name)

        if rt.ssh_public_key_id:
            client.current_user_ssh_key_delete(rt.ssh_public_key_id)
            log.debug('Deleted SSH key {}', rt.ssh_public_key_id)
        if rt.instance_id:
            client.instance_delete(rt.instance_id)
            log.debug('Deleted instance {}', rt.instance_id)
        if rt.boot_disk_id:
            client.disk_delete(rt.boot_disk_id)
            log.debug('Deleted boot disk {}', rt.boot_disk_id)
        for disk_id in rt.additional_disk_ids:
            client.disk_delete(disk_id)
            log.debug('Deleted additional disk {}', disk_id)

        self.runtime = RuntimeState()
        self.base.ip_address = ''
        log.info('Instance {} removed', name)

    # Internals

    def _wait_for_stopped(self) -> None:
        deadline = self._clock() + self.stop_timeout
        polls = 0
        while True:
            if self._clock() >= deadline:
                raise StopTimeoutError(
                    f'timed out waiting for instance {self.runtime.instance_id} '
                    f'to stop after {self.stop_timeout}s ({polls} polls)'
                )
            current = self.get_state()
            polls += 1
            if current == MachineState.STOPPED:
                log.debug('Instance stopped after {} polls', polls)
                return
            log.debug('Waiting for instance to stop: state={}', current.value)
            self._sleep(self.poll_interval)

    def _create_ssh_key(self) -> dict[str, Any]:
        key_path = self.get_ssh_key_path()
        pub_path = generate_ssh_key(key_path)
        return self.client().current_user_ssh_key_create(
            self.get_machine_name(),
            read_public_key(pub_path),
            description=DEFAULT_DESCRIPTION,
        )

    def _instance_create_body(
        self, *, ssh_public_keys: list[str], user_data: str
    ) -> dict[str, Any]:
        cfg = self.config
        name = self.get_machine_name()
        disks = [
            {
                'type': 'create',
                'name': disk.name(name, idx),
                'description': DEFAULT_DESCRIPTION,
                'size': disk.size,
                'disk_source': {'type': 'blank', 'block_size': DISK_BLOCK_SIZE},
            }
            for idx, disk in enumerate(cfg.additional_disks)
        ]
        log.debug(
            'Instance request name={} ncpus={} memory={} boot_disk={} disks={}',
            name,
            cfg.vcpus,
            format_size(cfg.memory),
            format_size(cfg.boot_disk_size),
            [d['name'] for d in disks],
        )
        return {
            'name': name,
            'hostname': name,
            'description': DEFAULT_DESCRIPTION,
            'ncpus': cfg.vcpus,
            'memory': cfg.memory,
            'boot_disk': {
                'type': 'create',
                'name': f'disk-{name}',
                'description': DEFAULT_DESCRIPTION,
                'size': cfg.boot_disk_size,
                'disk_source': {
                    'type': 'image',
                    'image_id': cfg.boot_disk_image_id,
                },
            },
            'disks': disks,
            'network_interfaces': {
                'type': 'create',
                'params': [
                    {
                        'name': f'nic-{name}',
                        'description': DEFAULT_DESCRIPTION,
                        'vpc_name': cfg.vpc,
                        'subnet_name': cfg.subnet,
                    }
                ],
            },
            'external_ips': [_external_ip_params(e) for e in cfg.external_ips],
            'anti_affinity_groups': list(cfg.anti_affinity_groups),
            'ssh_public_keys': ssh_public_keys,
            'user_data': user_data,
            'start': False,
        }
