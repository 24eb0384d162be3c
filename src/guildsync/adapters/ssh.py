"""SSH host adapter (state kept as a dump file on the remote host)."""

from __future__ import annotations

import posixpath
import shlex
import subprocess

from guildsync.errors import AdapterError, NetworkError

from .commands import CommandRunner, StoredStateAdapter

DEFAULT_STATE_PATH = ".guildsync/state.json"

# ssh exits with 255 when the connection itself fails.
_SSH_CONNECTION_FAILED = 255


class SshHostAdapter(StoredStateAdapter):
    """
    Keeps the guild structure in a dump file on a host reached over ``ssh``.

    ``host`` is an ssh config alias or hostname; relative paths are resolved
    against the remote user's home directory.
    """

    name = "ssh"

    def __init__(
        self,
        runner: CommandRunner,
        host: str,
        *,
        path: str = DEFAULT_STATE_PATH,
        ssh_options: tuple[str, ...] = ("-o", "BatchMode=yes"),
    ) -> None:
        super().__init__(runner)
        if not host or not host.strip():
            raise ValueError("host must be a non-empty string")
        self._host = host
        self._path = path
        self._ssh_options = ssh_options

    @property
    def host(self) -> str:
        return self._host

    def exec(self, command: str) -> str:
        """Run a shell command on the host and return its stdout."""
        self._ensure_open()
        return self._call(lambda: self._ssh(command))

    def _ssh(self, command: str, *, input: str | None = None) -> str:
        return self._run(["ssh", *self._ssh_options, self._host, "--", command], input=input)

    def _open(self) -> None:
        self._ssh("true")

    def _read_state(self) -> str:
        path = shlex.quote(self._path)
        return self._ssh(f"if [ -f {path} ]; then cat {path}; fi")

    def _write_state(self, text: str) -> None:
        path = shlex.quote(self._path)
        tmp = shlex.quote(self._path + ".tmp")
        directory = posixpath.dirname(self._path)
        mkdir = f"mkdir -p {shlex.quote(directory)} && " if directory else ""
        self._ssh(f"{mkdir}cat > {tmp} && mv {tmp} {path}", input=text)

    def _map_exception(self, exc: Exception) -> AdapterError:
        if (
            isinstance(exc, subprocess.CalledProcessError)
            and exc.returncode == _SSH_CONNECTION_FAILED
        ):
            return NetworkError(
                f"ssh: cannot reach {self._host}",
                details={"host": self._host, "returncode": exc.returncode},
                cause=exc,
            )
        return super()._map_exception(exc)
