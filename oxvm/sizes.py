"""Human readable byte size parsing (e.g. ``20 GiB``, ``1PB``, ``1024``)."""

from __future__ import annotations

import re
from fractions import Fraction

from .errors import SizeSyntaxError, SizeTooLargeError

KIBIBYTE = 1 << 10
MEBIBYTE = 1 << 20
GIBIBYTE = 1 << 30
TEBIBYTE = 1 << 40
PEBIBYTE = 1 << 50
EXBIBYTE = 1 << 60

# Upper bound accepted for any size given to the driver.
MAX_SIZE = PEBIBYTE

_UNITS = {
    '': 1,
    'b': 1,
    'k': 10**3,
    'kb': 10**3,
    'ki': KIBIBYTE,
    'kib': KIBIBYTE,
    'm': 10**6,
    'mb': 10**6,
    'mi': MEBIBYTE,
    'mib': MEBIBYTE,
    'g': 10**9,
    'gb': 10**9,
    'gi': GIBIBYTE,
    'gib': GIBIBYTE,
    't': 10**12,
    'tb': 10**12,
    'ti': TEBIBYTE,
    'tib': TEBIBYTE,
    'p': 10**15,
    'pb': 10**15,
    'pi': PEBIBYTE,
    'pib': PEBIBYTE,
    'e': 10**18,
    'eb': 10**18,
    'ei': EXBIBYTE,
    'eib': EXBIBYTE,
}

_SIZE_RE = re.compile(
    r'^\s*(?P<num>(?:\d[\d,]*(?:\.\d*)?)|(?:\.\d+))\s*(?P<unit>[a-zA-Z]*)\s*$'
)


def parse_size(text: str) -> int:
    """
    Parse a size string into an exact number of bytes.

    A bare number is bytes. Decimal (``GB``) and binary (``GiB``) suffixes
    are accepted case-insensitively, with or without a space. Thousands
    separators are ignored and fractional values are truncated to whole
    bytes.

    Raises:
        SizeSyntaxError: if the text is not a number with a known unit.
        SizeTooLargeError: if the value exceeds one pebibyte.

    Example:
        >>> from oxvm.sizes import parse_size
        >>> parse_size('10GiB')
        10737418240
        >>> parse_size('1PB')
        1000000000000000
        >>> parse_size('1')
        1
    """
    match = _SIZE_RE.match(text or '')
    if match is None:
        raise SizeSyntaxError(f'invalid size {text!r}')
    unit = match.group('unit').lower()
    if unit not in _UNITS:
        raise SizeSyntaxError(f'unknown unit {match.group("unit")!r} in size {text!r}')
    number = Fraction(match.group('num').replace(',', ''))
    size = int(number * _UNITS[unit])
    if size > MAX_SIZE:
        raise SizeTooLargeError(
            f'invalid size definition {text!r}, size too large (max {MAX_SIZE} bytes)'
        )
    return size


def format_size(size: int) -> str:
    """Render a byte count using the largest exact binary unit."""
    for unit, factor in (
        ('PiB', PEBIBYTE),
        ('TiB', TEBIBYTE),
        ('GiB', GIBIBYTE),
        ('MiB', MEBIBYTE),
        ('KiB', KIBIBYTE),
    ):
        if size and size % factor == 0:
            return f'{size // factor} {unit}'
    return str(size)
