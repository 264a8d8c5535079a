"""SSH key pair generation for the key injected into new instances."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from .errors import OxVMError
from .util import ensure_dir, run_cmd, which

log = logger


def generate_ssh_key(path: Path | str) -> Path:
    """
    Create an ed25519 key pair at ``path`` and ``path.pub``.

    An existing complete key pair is reused. Returns the public key path.
    """
    path = Path(path)
    pub = Path(str(path) + '.pub')
    if path.exists() and pub.exists():
        log.debug('Reusing SSH key pair at {}', path)
        return pub
    # ssh-keygen prompts before overwriting a lone private key.
    path.unlink(missing_ok=True)
    if which('ssh-keygen') is None:
        raise OxVMError('ssh-keygen is required to generate the machine SSH key')
    ensure_dir(path.parent)
    run_cmd(
        ['ssh-keygen', '-q', '-t', 'ed25519', '-N', '', '-C', path.parent.name, '-f', str(path)],
        check=True,
        capture=True,
    )
    log.info('Generated SSH key pair at {}', path)
    return pub


def read_public_key(pub_path: Path | str) -> str:
    return Path(pub_path).read_text(encoding='utf-8').strip()
