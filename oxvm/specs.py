"""Parsers for compound resource options: ``SIZE[,LABEL]`` and ``TYPE,NAME_OR_ID``."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import SizeError, SpecParseError
from .sizes import parse_size

DEFAULT_DISK_LABEL = 'additional'

EXTERNAL_IP_EPHEMERAL = 'ephemeral'
EXTERNAL_IP_FLOATING = 'floating'
EXTERNAL_IP_KINDS = (EXTERNAL_IP_EPHEMERAL, EXTERNAL_IP_FLOATING)


@dataclass(frozen=True)
class AdditionalDisk:
    """A blank disk attached to the instance in addition to the boot disk."""

    size: int
    label: str = DEFAULT_DISK_LABEL

    def name(self, machine_name: str, index: int) -> str:
        return f'disk-{index:02d}-{self.label}-{machine_name}'


@dataclass(frozen=True)
class ExternalIP:
    """An ephemeral IP allocated from a pool, or an existing floating IP."""

    kind: str
    name_or_id: str


def parse_additional_disk(text: str) -> AdditionalDisk:
    """
    Parse an additional disk from ``SIZE[,LABEL]``.

    ``SIZE`` accepts a unit suffix (e.g. ``20 GiB``). An empty label after the
    comma keeps the default label.

    Example:
        >>> from oxvm.specs import parse_additional_disk
        >>> parse_additional_disk('10GiB,data')
        AdditionalDisk(size=10737418240, label='data')
        >>> parse_additional_disk('10GiB,')
        AdditionalDisk(size=10737418240, label='additional')
    """
    fields = text.split(',')
    if len(fields) > 2:
        raise SpecParseError(f'invalid format {text!r}, expected size[,label]')
    size_str = fields[0]
    label = DEFAULT_DISK_LABEL
    if len(fields) == 2 and fields[1].strip():
        label = fields[1].strip()
    if not size_str.strip():
        raise SpecParseError(
            f'invalid format {text!r}, missing size, expected size[,label]'
        )
    try:
        size = parse_size(size_str)
    except SizeError as ex:
        raise SpecParseError(
            f'failed parsing size {size_str!r} in {text!r}: {ex}'
        ) from ex
    if size <= 0:
        raise SpecParseError(f'disk size must be positive in {text!r}')
    return AdditionalDisk(size=size, label=label)


def parse_external_ip(text: str) -> ExternalIP:
    """
    Parse an external IP from ``TYPE,NAME_OR_ID``.

    ``TYPE`` is ``ephemeral`` (``NAME_OR_ID`` names the IP pool) or
    ``floating`` (``NAME_OR_ID`` names an existing floating IP).

    Example:
        >>> from oxvm.specs import parse_external_ip
        >>> parse_external_ip('floating,floating_ip_foo')
        ExternalIP(kind='floating', name_or_id='floating_ip_foo')
    """
    fields = text.split(',')
    if len(fields) != 2:
        raise SpecParseError(
            f'invalid format {text!r}, expected type,name_or_id'
        )
    kind, name_or_id = fields
    if kind not in EXTERNAL_IP_KINDS:
        raise SpecParseError(
            f'invalid type {kind!r} in {text!r}, expected one of: '
            + ', '.join(EXTERNAL_IP_KINDS)
        )
    if not name_or_id:
        raise SpecParseError(
            f'missing name_or_id in {text!r}, expected type,name_or_id'
        )
    return ExternalIP(kind=kind, name_or_id=name_or_id)
