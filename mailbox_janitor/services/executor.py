"""Runs the external purge command for a single mailbox."""

from __future__ import annotations

import logging
import subprocess
import time

from mailbox_janitor.core.errors import ExecutionError
from mailbox_janitor.core.models import PurgeResult
from mailbox_janitor.core.validation import validate_identifier

logger = logging.getLogger(__name__)

DEFAULT_DOVEADM_PATH = "/usr/bin/doveadm"


class PurgeExecutor:
    """Purges one mailbox per call with ``doveadm purge -u <identifier>``.

    The command is run from an argv list, never through a shell, and never
    with more than one identifier. Purging an already purged mailbox is
    harmless, so a retry after a crash before removal is safe.
    """

    def __init__(
        self,
        doveadm_path: str = DEFAULT_DOVEADM_PATH,
        use_sudo: bool = True,
        timeout: float | None = 300.0,
        sudo_path: str = "sudo",
    ) -> None:
        """Initialize the executor.

        Args:
            doveadm_path: Path to the doveadm binary.
            use_sudo: Prefix the command with sudo.
            timeout: Seconds before a hung command is killed. None or 0
                disables the limit.
            sudo_path: sudo binary to use when use_sudo is set.
        """
        self.doveadm_path = doveadm_path
        self.use_sudo = use_sudo
        self.timeout = timeout or None
        self.sudo_path = sudo_path

    def build_command(self, identifier: str) -> list[str]:
        command = [self.doveadm_path, "purge", "-u", identifier]
        if self.use_sudo:
            command.insert(0, self.sudo_path)
        return command

    def execute(self, identifier: str) -> PurgeResult:
        """Purge a single mailbox.

        Args:
            identifier: Mailbox address. Re-validated before anything runs.

        Returns:
            PurgeResult with the command output.

        Raises:
            ValidationError: If the identifier is unsafe; nothing is executed.
            ExecutionError: If the command cannot be started, exits non-zero
                or exceeds the timeout.
        """
        validate_identifier(identifier)

        command = self.build_command(identifier)
        logger.debug(f"Executing command: {' '.join(command)}")

        start = time.monotonic()
        try:
            proc = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            output = _decode(e.output)
            raise ExecutionError(
                identifier,
                f"doveadm purge timed out after {self.timeout}s",
                output=output,
            ) from e
        except OSError as e:
            raise ExecutionError(identifier, f"doveadm purge could not be started: {e}") from e

        duration = time.monotonic() - start
        output = _decode(proc.stdout)
        if proc.returncode != 0:
            raise ExecutionError(
                identifier,
                "doveadm purge failed",
                returncode=proc.returncode,
                output=output,
            )

        logger.debug(f"Command executed successfully for {identifier}: {output.strip()}")
        return PurgeResult(
            identifier=identifier,
            returncode=proc.returncode,
            output=output,
            duration_seconds=duration,
        )


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
