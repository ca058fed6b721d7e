"""SSH key pair generation through ``ssh-keygen``."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from hcmachine.base.exceptions import CredentialError

logger = logging.getLogger("hcmachine")

KEY_TYPE = "rsa"
KEY_BITS = 2048


def public_key_path(private_key_path: str | os.PathLike[str]) -> Path:
    return Path(str(private_key_path) + ".pub")


def generate_ssh_key(path: str | os.PathLike[str], comment: str = "hcmachine") -> Path:
    """Create an RSA key pair at *path* (and ``path.pub``) unless one exists.

    Args:
        path: Private key path.
        comment: Comment embedded in the public key.

    Returns:
        Path of the public key.

    Raises:
        CredentialError: If ``ssh-keygen`` is missing or fails.
    """
    private_key = Path(path)
    public_key = public_key_path(private_key)

    if private_key.exists() and public_key.exists():
        logger.info("Reusing existing SSH key pair at %s", private_key)
        return public_key

    if shutil.which("ssh-keygen") is None:
        raise CredentialError("ssh-keygen not found on PATH")

    private_key.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    for stale in (private_key, public_key):
        if stale.exists():
            stale.unlink()

    result = subprocess.run(
        [
            "ssh-keygen",
            "-t", KEY_TYPE,
            "-b", str(KEY_BITS),
            "-m", "PEM",
            "-f", str(private_key),
            "-N", "",
            "-C", comment,
            "-q",
        ],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise CredentialError(f"Failed to generate SSH key: {result.stderr.strip()}")

    private_key.chmod(0o600)
    public_key.chmod(0o644)
    logger.info("Generated SSH key pair at %s", private_key)
    return public_key


def read_public_key(path: str | os.PathLike[str]) -> str:
    """Return the public key belonging to the private key at *path*."""
    try:
        return public_key_path(path).read_text().strip()
    except OSError as e:
        raise CredentialError(f"Cannot read public key for {path}") from e
