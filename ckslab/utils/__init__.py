"""Utility functions and helpers for the ckslab application."""
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from ..config import Config

logger = logging.getLogger("ckslab.utils")


def redact_command(cmd: Sequence[str]) -> List[str]:
    """Mask the values that follow credential flags in a command.

    Args:
        cmd: Command as a list of arguments

    Returns:
        A copy of the command safe to log
    """
    redacted = []
    hide_next = False
    for arg in cmd:
        if hide_next:
            redacted.append("[REDACTED]")
            hide_next = False
            continue
        flag, sep, _ = arg.partition("=")
        if flag in Config.REDACT_FLAGS:
            if sep:
                redacted.append(f"{flag}=[REDACTED]")
            else:
                redacted.append(arg)
                hide_next = True
            continue
        redacted.append(arg)
    return redacted


def run_command(
    cmd: Sequence[str],
    *,
    check: bool = True,
    capture_output: bool = True,
    input: Optional[str] = None,
    cwd: Optional[Path] = None,
    log_output: bool = True,
) -> subprocess.CompletedProcess:
    """Run a host command, logging it with credentials masked.

    Pass ``log_output=False`` when stdout carries secrets (join tokens,
    kubeconfig keys); the output is then never written to the log.
    """
    cmd_str = ' '.join(redact_command(cmd))
    logger.debug(f"💻 Running: {cmd_str}")
    try:
        result = subprocess.run(
            list(cmd),
            check=check,
            text=True,
            input=input,
            cwd=cwd,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE if capture_output else None,
        )
        if capture_output and log_output and result.stdout:
            logger.debug(f"🟢 Output:\n{result.stdout}")
        return result
    except subprocess.CalledProcessError as e:
        msg = f"❌ Command failed: {cmd_str} (exit code: {e.returncode})"
        if capture_output and log_output:
            msg += f"\nStdout:\n{e.stdout}\nStderr:\n{e.stderr}"
        elif capture_output:
            msg += f"\nStderr:\n{e.stderr}"
        logger.error(msg)
        raise


def write_yaml_file(
    path: Union[str, Path],
    data: Union[Dict[str, Any], List[Dict[str, Any]]],
    mode: int = 0o600,
    header: str = '',
) -> Path:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write; a list is written as a multi-document stream
        mode: File permissions (default: 0o600)
        header: Text placed before the first document, e.g. ``#cloud-config``

    Returns:
        The path written

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            if header:
                f.write(header.rstrip('\n') + '\n')
            if isinstance(data, list):
                yaml.safe_dump_all(data, f, default_flow_style=False, sort_keys=False)
            else:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise
    return path


def remove_file(path: Union[str, Path]) -> bool:
    """Delete a file if present. Returns True when something was removed."""
    path = Path(path)
    if not path.exists():
        return False
    path.unlink()
    return True
