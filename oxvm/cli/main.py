"""Top-level modal CLI wiring and logging setup."""

from __future__ import annotations

import sys

import scriptconfig as scfg

from ._common import _count_verbose, _setup_logging, log
from .machine import (
    CreateCLI,
    FlagsCLI,
    IPCLI,
    KillCLI,
    RemoveCLI,
    RestartCLI,
    StartCLI,
    StateCLI,
    StopCLI,
    URLCLI,
)


class OxVMModalCLI(scfg.ModalCLI):
    """Provision and manage a single instance on an Oxide rack."""

    create = CreateCLI
    start = StartCLI
    stop = StopCLI
    restart = RestartCLI
    kill = KillCLI
    remove = RemoveCLI
    state = StateCLI
    ip = IPCLI
    url = URLCLI
    flags = FlagsCLI


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    _setup_logging(_count_verbose(argv))

    try:
        rc = OxVMModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled oxvm error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)
