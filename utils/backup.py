"""
Backup and restore utilities for the persisted ledger.

Creates timestamped copies of the file that backs the persistence layer
(the JSON ledger document or the SQLite database) and restores from those
copies with a confirmation prompt.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from exceptions import BackupError
from utils import ensure_data_dir, get_project_root, prompt_user_choice, resolve_connection_string

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "ledger_backup_"


def extract_db_path_from_connection_string(connection_string: str) -> Path:
    """
    Extract the database file path from a SQLAlchemy connection string.

    Args:
        connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/ledger.db')

    Returns:
        Absolute Path to the database file

    Raises:
        BackupError: If connection string cannot be parsed or is not a SQLite file
    """
    try:
        url = make_url(connection_string)
    except ArgumentError as exc:
        raise BackupError(
            f"Invalid connection string: {connection_string}",
            details={"connection_string": connection_string},
            original_error=exc
        ) from exc

    if not url.drivername.startswith("sqlite"):
        raise BackupError(
            f"Backup only supports SQLite databases, got: {url.drivername}",
            details={"driver": url.drivername}
        )

    database = url.database
    if not database or database == ":memory:":
        raise BackupError(
            "Connection string does not specify a database file",
            details={"connection_string": connection_string}
        )

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = get_project_root() / db_path

    return db_path.resolve()


def resolve_ledger_file(config: Optional[Dict[str, Any]] = None) -> Path:
    """
    Locate the file backing the configured persistence backend.

    Args:
        config: Configuration dictionary

    Returns:
        Path to ``<data_dir>/<key>.json`` for the file backend, or the SQLite
        database file for the database backend

    Raises:
        BackupError: For backends without a single backing file
    """
    config = config or {}
    persistence_config = config.get("persistence", {}) or {}
    backend = str(persistence_config.get("backend", "file")).lower()

    if backend == "file":
        key = persistence_config.get("key") or "ledger"
        return (ensure_data_dir(config) / f"{key}.json").resolve()
    if backend == "database":
        return extract_db_path_from_connection_string(resolve_connection_string(config))

    raise BackupError(f"Backend '{backend}' has no file to back up", details={"backend": backend})


def get_backup_dir(ledger_path: Optional[Path] = None, config: Optional[Dict[str, Any]] = None) -> Path:
    """
    Get the backup directory path.

    Defaults to a ``backups`` directory next to the ledger file. Can be
    overridden via config['backup']['backup_dir'].

    Args:
        ledger_path: Optional ledger file path (used to infer backup location)
        config: Optional configuration dictionary

    Returns:
        Absolute Path to the backup directory
    """
    if config:
        backup_dir_raw = (config.get("backup", {}) or {}).get("backup_dir")
        if backup_dir_raw:
            backup_path = Path(backup_dir_raw)
            if not backup_path.is_absolute():
                backup_path = get_project_root() / backup_path
            return backup_path.resolve()

    if ledger_path:
        return (Path(ledger_path).parent / "backups").resolve()

    return (get_project_root() / "data" / "backups").resolve()


def _prune_backups(backup_dir: Path, suffix: str, max_backups: int) -> None:
    if max_backups <= 0:
        return
    backups = sorted(
        backup_dir.glob(f"{BACKUP_PREFIX}*{suffix}"),
        key=lambda f: f.stat().st_mtime,
        reverse=True
    )
    for stale in backups[max_backups:]:
        try:
            stale.unlink()
            logger.info(f"Removed old backup: {stale}")
        except OSError as exc:
            logger.warning(f"Could not remove old backup {stale}: {exc}")


def create_backup(ledger_path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> str:
    """
    Create a timestamped backup of the ledger file.

    Args:
        ledger_path: Ledger file path or SQLite connection string
        config: Optional configuration dictionary (backup_dir, max_backups)

    Returns:
        Path to the created backup file

    Raises:
        BackupError: If backup creation fails (missing file, permission issues, etc.)
    """
    if isinstance(ledger_path, str) and ledger_path.startswith("sqlite:"):
        source = extract_db_path_from_connection_string(ledger_path)
    else:
        source = Path(ledger_path).resolve()

    if not source.exists():
        raise BackupError(
            f"Ledger file not found: {source}",
            details={"ledger_path": str(source)}
        )

    backup_dir = get_backup_dir(source, config)
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BackupError(
            f"Failed to create backup directory: {backup_dir}",
            details={"backup_dir": str(backup_dir)},
            original_error=exc
        ) from exc

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = backup_dir / f"{BACKUP_PREFIX}{timestamp}{source.suffix}"

    try:
        logger.info(f"Creating backup: {backup_path}")
        shutil.copy2(source, backup_path)
    except (OSError, shutil.Error) as exc:
        raise BackupError(
            f"Failed to create backup: {exc}",
            details={"source": str(source), "destination": str(backup_path)},
            original_error=exc
        ) from exc

    original_size = source.stat().st_size
    backup_size = backup_path.stat().st_size
    if original_size != backup_size:
        backup_path.unlink(missing_ok=True)
        raise BackupError(
            f"Backup size mismatch: original={original_size}, backup={backup_size}",
            details={"original_size": original_size, "backup_size": backup_size}
        )

    logger.info(f"Backup created successfully: {backup_path}")
    max_backups = int(((config or {}).get("backup", {}) or {}).get("max_backups") or 0)
    _prune_backups(backup_dir, source.suffix, max_backups)
    return str(backup_path)


def list_backups(
    backup_dir: Optional[Union[str, Path]] = None,
    ledger_path: Optional[Union[str, Path]] = None,
    config: Optional[Dict[str, Any]] = None
) -> List[str]:
    """
    List available backups, newest first.

    Args:
        backup_dir: Optional explicit backup directory path
        ledger_path: Optional ledger file path (used to infer backup location)
        config: Optional configuration dictionary

    Returns:
        List of backup file paths sorted by modification time (newest first)
    """
    if backup_dir:
        backup_dir_path = Path(backup_dir).resolve()
    else:
        backup_dir_path = get_backup_dir(Path(ledger_path) if ledger_path else None, config)

    if not backup_dir_path.exists():
        logger.warning(f"Backup directory does not exist: {backup_dir_path}")
        return []

    try:
        backup_files = [f for f in backup_dir_path.glob(f"{BACKUP_PREFIX}*") if f.is_file()]
    except OSError as exc:
        raise BackupError(
            f"Failed to list backups in directory: {backup_dir_path}",
            details={"backup_dir": str(backup_dir_path)},
            original_error=exc
        ) from exc

    backup_files.sort(key=lambda f: f.stat().st_mtime, reverse=True)
    return [str(f) for f in backup_files]


def restore_backup(backup_path: Union[str, Path], ledger_path: Union[str, Path], force: bool = False) -> bool:
    """
    Restore the ledger file from a backup.

    Without ``force`` an existing ledger file is only overwritten after the
    user confirms; a non-interactive session declines.

    Args:
        backup_path: Backup file to restore from
        ledger_path: Target ledger file path or SQLite connection string
        force: Skip the confirmation prompt

    Returns:
        True if the backup was restored, False if the user declined

    Raises:
        BackupError: If restore fails (missing backup, permission issues, etc.)
    """
    backup_file = Path(backup_path).resolve()
    if not backup_file.exists():
        raise BackupError(
            f"Backup file not found: {backup_path}",
            details={"backup_path": str(backup_file)}
        )

    if isinstance(ledger_path, str) and ledger_path.startswith("sqlite:"):
        target = extract_db_path_from_connection_string(ledger_path)
    else:
        target = Path(ledger_path).resolve()

    if target.exists() and not force:
        choice = prompt_user_choice(
            f"Overwrite the existing ledger at {target}? Close the app before restoring",
            {"y": "yes", "n": "no"},
            default="n"
        )
        if choice != "y":
            logger.info("Restore cancelled by user")
            return False

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Restoring backup: {backup_file} -> {target}")
        shutil.copy2(backup_file, target)
    except (OSError, shutil.Error) as exc:
        raise BackupError(
            f"Failed to restore backup: {exc}",
            details={"backup_path": str(backup_file), "target_path": str(target)},
            original_error=exc
        ) from exc

    if backup_file.stat().st_size != target.stat().st_size:
        raise BackupError(
            "Restore size mismatch",
            details={"backup_path": str(backup_file), "target_path": str(target)}
        )

    logger.info(f"Restore completed successfully: {target}")
    return True
