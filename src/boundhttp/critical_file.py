"""Checksum-guarded file storage.

A critical file holds its content followed by the SHA-256 digest of that
content. While a file is being rewritten the previous version is kept as a
``.bak`` sibling, so an interrupted write can be recovered on the next read.
"""

import hashlib
import shutil
from pathlib import Path

DIGEST_LENGTH = hashlib.sha256().digest_size


def get_critical_backup_file(path: str | Path) -> Path:
    path = Path(path)
    return path.with_name(f"{path.stem}.bak")


def _read_signed_bytes(path: Path) -> bytes | None:
    if not path.is_file():
        return None
    signed = path.read_bytes()
    if len(signed) < DIGEST_LENGTH:
        return None
    content, digest = signed[:-DIGEST_LENGTH], signed[-DIGEST_LENGTH:]
    if hashlib.sha256(content).digest() != digest:
        return None
    return content


def read_critical_file(path: str | Path, backup_path: str | Path | None = None) -> bytes:
    """Returns the verified content of ``path``, falling back to its backup.

    A valid backup is copied over the damaged file before returning.
    Raises ``OSError`` when neither copy verifies.
    """
    path = Path(path)
    backup_path = Path(backup_path) if backup_path is not None else get_critical_backup_file(path)

    content = _read_signed_bytes(path)
    if content is not None:
        backup_path.unlink(missing_ok=True)
        return content

    content = _read_signed_bytes(backup_path)
    if content is not None:
        shutil.copyfile(backup_path, path)
        backup_path.unlink(missing_ok=True)
        return content

    raise OSError(f"Can't read neither critical file '{path}', nor backup file '{backup_path}'.")


def write_critical_file(path: str | Path, content: bytes, backup_path: str | Path | None = None) -> None:
    path = Path(path)
    backup_path = Path(backup_path) if backup_path is not None else get_critical_backup_file(path)

    if path.is_file():
        shutil.copyfile(path, backup_path)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content + hashlib.sha256(content).digest())
    backup_path.unlink(missing_ok=True)
