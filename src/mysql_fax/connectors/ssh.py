"""
SSH tunnel to a source database.

Runs the system ``ssh`` client with a local port-forward so a database that
is only reachable from the gateway can be queried as ``127.0.0.1:<port>``.
The tunnel is a scoped resource: ``open_tunnel()`` always stops the ssh
process when the block exits, whether it completes, raises or is
interrupted.

Example:
    with open_tunnel("deploy", "gw.example.com", 3307, "db.internal", 3306):
        conn = pymysql.connect(host="127.0.0.1", port=3307, ...)
"""

from __future__ import annotations

import socket
import subprocess
import time
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

from mysql_fax.errors import TunnelError
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

LOCAL_BIND_ADDRESS = "127.0.0.1"


class SSHTunnel:
    """
    One ssh local-forward process.

    Maps ``127.0.0.1:local_port`` to ``remote_host:remote_port`` as seen
    from ``gateway_user@gateway_host``.
    """

    def __init__(
        self,
        gateway_user: str,
        gateway_host: str,
        local_port: int,
        remote_host: str,
        remote_port: int,
        ssh_binary: str = "ssh",
        timeout: float = 15.0,
    ) -> None:
        self.gateway_user = gateway_user
        self.gateway_host = gateway_host
        self.local_port = local_port
        self.remote_host = remote_host
        self.remote_port = remote_port
        self.ssh_binary = ssh_binary
        self.timeout = timeout
        self.process: subprocess.Popen[bytes] | None = None

    @property
    def gateway(self) -> str:
        if self.gateway_user:
            return f"{self.gateway_user}@{self.gateway_host}"
        return self.gateway_host

    def command(self) -> list[str]:
        """argv of the ssh process."""
        return [
            self.ssh_binary,
            "-N",
            "-o", "ExitOnForwardFailure=yes",
            "-o", "BatchMode=yes",
            "-L",
            f"{LOCAL_BIND_ADDRESS}:{self.local_port}:{self.remote_host}:{self.remote_port}",
            self.gateway,
        ]

    def start(self) -> None:
        """Spawn ssh and wait until the local port accepts connections."""
        logger.info(f"Starting SSH tunnel through {self.gateway}")
        logger.debug(
            f"Forwarding {LOCAL_BIND_ADDRESS}:{self.local_port} -> "
            f"{self.remote_host}:{self.remote_port}"
        )

        self._check_port_free()
        try:
            self.process = subprocess.Popen(
                self.command(),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise TunnelError(
                f"SSH client not found ({self.ssh_binary}). Please install OpenSSH client."
            ) from e
        except OSError as e:
            raise TunnelError(f"Failed to start SSH tunnel: {e}") from e

        deadline = time.monotonic() + self.timeout
        while True:
            if self.process.poll() is not None:
                _, stderr = self.process.communicate()
                message = stderr.decode("utf-8", errors="ignore").strip()
                raise TunnelError(
                    f"SSH tunnel through {self.gateway} failed"
                    + (f": {message}" if message else f" (exit {self.process.returncode})")
                )
            if self._port_open():
                break
            if time.monotonic() >= deadline:
                raise TunnelError(
                    f"SSH tunnel through {self.gateway} not ready after {self.timeout:.0f}s"
                )
            time.sleep(0.2)

        logger.info(f"SSH tunnel established on {LOCAL_BIND_ADDRESS}:{self.local_port}")

    def _check_port_free(self) -> None:
        # A listener already on the port would pass the readiness check
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((LOCAL_BIND_ADDRESS, self.local_port))
            except OSError as e:
                raise TunnelError(
                    f"Local port {LOCAL_BIND_ADDRESS}:{self.local_port} is already in use: {e}"
                ) from e

    def _port_open(self) -> bool:
        try:
            with socket.create_connection((LOCAL_BIND_ADDRESS, self.local_port), timeout=0.5):
                return True
        except OSError:
            return False

    def stop(self) -> None:
        """Stop the ssh process. Safe to call when it never started."""
        if self.process is None:
            return
        process, self.process = self.process, None
        if process.poll() is not None:
            return
        try:
            process.terminate()
            process.wait(timeout=5)
            logger.info("SSH tunnel closed")
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            logger.warning("SSH tunnel forcefully terminated")


@contextmanager
def open_tunnel(
    gateway_user: str,
    gateway_host: str,
    local_port: int,
    remote_host: str,
    remote_port: int,
    ssh_binary: str = "ssh",
    timeout: float = 15.0,
) -> Generator[SSHTunnel, None, None]:
    """Open a tunnel for the duration of a ``with`` block."""
    tunnel = SSHTunnel(
        gateway_user,
        gateway_host,
        local_port,
        remote_host,
        remote_port,
        ssh_binary=ssh_binary,
        timeout=timeout,
    )
    try:
        tunnel.start()
        yield tunnel
    finally:
        tunnel.stop()


def with_tunnel(
    gateway_user: str,
    gateway_host: str,
    local_port: int,
    remote_host: str,
    remote_port: int,
    body: Callable[[SSHTunnel], T],
    ssh_binary: str = "ssh",
    timeout: float = 15.0,
) -> T:
    """Run ``body`` with an open tunnel and return its result."""
    with open_tunnel(
        gateway_user,
        gateway_host,
        local_port,
        remote_host,
        remote_port,
        ssh_binary=ssh_binary,
        timeout=timeout,
    ) as tunnel:
        return body(tunnel)
