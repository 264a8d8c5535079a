from __future__ import annotations

import os
import sys
from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..driver import Driver
from ..store import default_store_path, load_machine, save_machine
from ..util import expand

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    name = scfg.Value(
        '', type=str, position=1, help='Machine name (also the instance name).'
    )
    store_path = scfg.Value(
        None,
        help='Directory holding machine state and keys (default: user data dir).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _store_path(p: str | None) -> Path:
    return Path(expand(p)).resolve() if p else default_store_path()


def _require_name(name: str) -> str:
    name = str(name or '').strip()
    if not name:
        raise RuntimeError('A machine name is required.')
    return name


def _load_driver(args) -> Driver:
    return load_machine(_store_path(args.store_path), _require_name(args.name))


def _save_driver(driver: Driver) -> Path:
    path = save_machine(driver)
    log.debug('Saved machine state to {}', path)
    return path


def _setup_logging(args_verbose: int) -> None:
    logger.remove()
    level = 'WARNING'
    if args_verbose == 1:
        level = 'INFO'
    elif args_verbose >= 2:
        level = 'DEBUG'
    if os.getenv('OXIDE_DEBUG', '').strip().lower() in {'1', 'true', 'yes'}:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug('Logging configured at {} (colorize={})', level, colorize)


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
