"""Thin wrapper around the ``multipass`` CLI.

Every interaction with the VMs goes through this class so the rest of the
package can be exercised against a stand-in backend.
"""
import json
import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from ckslab.utils import redact_command, run_command

logger = logging.getLogger("ckslab.multipass")


class Multipass:
    """Runs multipass commands on the host."""

    def __init__(self, binary: str = "multipass"):
        self.binary = binary

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def exists(self, name: str) -> bool:
        result = run_command([self.binary, "info", name], check=False)
        return result.returncode == 0

    def launch(
        self,
        name: str,
        cpus: int,
        memory: str,
        disk: str,
        image: str,
        cloud_init: Path,
    ) -> None:
        """Launch a VM. Raises CalledProcessError on failure."""
        run_command([
            self.binary, "launch",
            "-n", name,
            "-c", str(cpus),
            "-m", memory,
            "-d", disk,
            image,
            "--cloud-init", str(cloud_init),
        ])

    def ipv4(self, name: str) -> str:
        """Return the first IPv4 address Multipass reports for a VM."""
        result = run_command([self.binary, "info", name, "--format", "json"])
        data = json.loads(result.stdout)
        all_ips = data["info"][name].get("ipv4", [])

        # Convert to list if it's a string
        ip_list = [all_ips] if isinstance(all_ips, str) else all_ips
        valid_ips = [ip for ip in ip_list if ip]
        if not valid_ips:
            raise ValueError(f"No IPv4 address reported for {name}")
        return valid_ips[0]

    def exec(
        self,
        name: str,
        command: Sequence[str],
        *,
        check: bool = True,
        input: Optional[str] = None,
        log_output: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a command inside a VM and capture its output."""
        return run_command(
            [self.binary, "exec", name, "--", *command],
            check=check,
            input=input,
            log_output=log_output,
        )

    def file_exists(self, name: str, path: str) -> bool:
        result = self.exec(name, ["test", "-f", path], check=False)
        return result.returncode == 0

    def tail(self, name: str, path: str, lines: int = 20) -> str:
        result = self.exec(name, ["tail", "-n", str(lines), path], check=False)
        return result.stdout if result.returncode == 0 else ""

    def follow(self, name: str, path: str) -> subprocess.Popen:
        """Stream a remote file to the terminal until the handle is terminated."""
        cmd = [self.binary, "exec", name, "--", "tail", "-n", "+1", "-f", path]
        logger.debug(f"💻 Streaming: {' '.join(cmd)}")
        return subprocess.Popen(cmd, stderr=subprocess.DEVNULL)

    def exec_to_log(
        self,
        name: str,
        command: Sequence[str],
        log_path: Path,
        echo: bool = False,
        stream: TextIO = sys.stdout,
    ) -> int:
        """Run a command inside a VM, saving combined output to ``log_path``.

        When ``echo`` is set every line is also written to ``stream`` as it
        arrives. Returns the command's exit code.
        """
        cmd = [self.binary, "exec", name, "--", *command]
        logger.debug(f"💻 Running: {' '.join(redact_command(cmd))} > {log_path}")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "w", encoding="utf-8") as log:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
            for line in proc.stdout:
                log.write(line)
                if echo:
                    stream.write(line)
                    stream.flush()
            return proc.wait()

    def delete(self, name: str) -> None:
        run_command([self.binary, "delete", name])

    def purge(self) -> None:
        run_command([self.binary, "purge"])

    def list_names(self) -> List[str]:
        result = run_command([self.binary, "list", "--format", "json"])
        return [vm["name"] for vm in json.loads(result.stdout).get("list", [])]


def get_backend() -> Multipass:
    """Backend used by the CLI commands."""
    return Multipass()
