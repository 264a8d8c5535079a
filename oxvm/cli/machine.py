"""CLI commands for the machine lifecycle: create, start/stop, state, and remove."""

from __future__ import annotations

import scriptconfig as scfg

from ..driver import Driver
from ..flags import CREATE_FLAGS
from ._common import (
    _BaseCommand,
    _load_driver,
    _require_name,
    _save_driver,
    _store_path,
    log,
)


def _parse_list_arg(value: str) -> list[str]:
    # Items can contain commas (e.g. ``10GiB,data``) so lists use ';'.
    items = [p.strip() for p in (value or '').split(';')]
    return [p for p in items if p]


def _raw_options(args) -> dict[str, object]:
    raw: dict[str, object] = {}
    for flag in CREATE_FLAGS:
        value = getattr(args, flag.dest)
        if flag.kind == 'list':
            raw[flag.name] = _parse_list_arg(value)
        else:
            raw[flag.name] = value
    return raw


class CreateCLI(_BaseCommand):
    """Create an Oxide instance with its SSH key, disks, and network interface.

    Options left empty fall back to their OXIDE_* environment variables.
    List options take ';' separated items.
    """

    host = scfg.Value('', type=str, help='Oxide silo URL (env: OXIDE_HOST).')
    token = scfg.Value('', type=str, help='Oxide API token (env: OXIDE_TOKEN).')
    project = scfg.Value(
        '', type=str, help='Project to create the instance in (env: OXIDE_PROJECT).'
    )
    vcpus = scfg.Value('', type=str, help='Number of vCPUs (default: 2).')
    memory = scfg.Value('', type=str, help='Memory size, e.g. "4 GiB".')
    boot_disk_size = scfg.Value(
        '', type=str, help='Boot disk size, e.g. "20 GiB".'
    )
    boot_disk_image_id = scfg.Value(
        '', type=str, help='Image ID for the boot disk.'
    )
    additional_disk = scfg.Value(
        '', type=str, help='Additional disks as SIZE[,LABEL];SIZE[,LABEL]...'
    )
    external_ip = scfg.Value(
        '',
        type=str,
        help='External IPs as TYPE,NAME_OR_ID;... with TYPE ephemeral or floating.',
    )
    vpc = scfg.Value('', type=str, help='VPC name (default: default).')
    subnet = scfg.Value('', type=str, help='Subnet name (default: default).')
    user_data_file = scfg.Value('', type=str, help='Path to a user data file.')
    ssh_user = scfg.Value('', type=str, help='SSH user (default: oxide).')
    ssh_public_key = scfg.Value(
        '', type=str, help='Additional SSH public key names or IDs, ";" separated.'
    )
    anti_affinity_group = scfg.Value(
        '', type=str, help='Anti-affinity group names or IDs, ";" separated.'
    )
    user_agent = scfg.Value('', type=str, help='Custom API user agent.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with Driver(_require_name(args.name), _store_path(args.store_path)) as driver:
            driver.set_config_from_flags(_raw_options(args))
            driver.pre_create_check()
            try:
                driver.create()
            finally:
                # Keep whatever ids were recorded so `oxvm remove` can clean up.
                _save_driver(driver)
            print(driver.get_ip())
        return 0


class StartCLI(_BaseCommand):
    """Start the instance."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            driver.start()
        return 0


class StopCLI(_BaseCommand):
    """Stop the instance."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            driver.stop()
        return 0


class RestartCLI(_BaseCommand):
    """Reboot the instance."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            driver.restart()
        return 0


class KillCLI(_BaseCommand):
    """Stop the instance without removing it."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            driver.kill()
        return 0


class RemoveCLI(_BaseCommand):
    """Stop and delete the instance, its SSH key, and its disks."""

    stop_timeout = scfg.Value(120, type=int, help='Seconds to wait for stop.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            driver.stop_timeout = float(args.stop_timeout)
            try:
                driver.remove()
            finally:
                _save_driver(driver)
        log.info('Removed machine {}', driver.get_machine_name())
        return 0


class StateCLI(_BaseCommand):
    """Print the machine state."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            print(driver.get_state().value)
        return 0


class IPCLI(_BaseCommand):
    """Print the instance's private IP address."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            print(driver.get_ssh_hostname())
        return 0


class URLCLI(_BaseCommand):
    """Print the Docker URL of the running instance."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        with _load_driver(args) as driver:
            print(driver.get_url())
        return 0


class FlagsCLI(scfg.DataConfig):
    """List driver options with their environment variables and defaults."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        for flag in CREATE_FLAGS:
            extras = []
            if flag.env_var:
                extras.append(f'env={flag.env_var}')
            if flag.default is not None:
                extras.append(f'default={flag.default}')
            suffix = f' [{", ".join(extras)}]' if extras else ''
            print(f'--{flag.name}{suffix}')
            print(f'    {flag.usage}')
        return 0
