"""
Remote Execution Tools
======================

ssh-execute and docker-run run a command on a configured target host.

Both tools:
1. Pass the literal command through the risk policy (blocked -> raise)
2. Look the target up in the host inventory
3. Run it over a pooled asyncssh connection

``SSHConnectionPool`` caches one connection per ``host:port:user`` key.
Each key has its own asyncio.Lock, so two steps racing for the same host
share a single connection instead of opening two. Dead connections are
evicted and reopened on the next acquire.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import asyncssh

from crewforge.config import TargetHost
from crewforge.errors import ToolFailure
from crewforge.security import enforce_command_policy
from crewforge.tools.base import require_str
from crewforge.tools.docker import TEMPLATE_NAMES, DockerTemplates

logger = logging.getLogger(__name__)

TARGET_KEYS = ("target", "targetId", "target_id", "vpsId")

Connector = Callable[[TargetHost], Awaitable[Any]]


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int
    duration: float

    def summary(self) -> str:
        return f"Exit {self.exit_code}: {self.stdout or self.stderr}"


class SSHConnectionPool:
    """
    Reusable SSH connections keyed by ``host:port:user``.

    Args:
        connector: Coroutine opening a connection for a target
            (defaults to asyncssh.connect)
        known_hosts: Passed to asyncssh; None keeps asyncssh's default lookup
        connect_timeout: Seconds allowed for the SSH handshake
    """

    def __init__(
        self,
        connector: Optional[Connector] = None,
        *,
        known_hosts: Any = (),
        connect_timeout: float = 15.0,
    ):
        self._connector = connector or self._connect
        self._known_hosts = known_hosts
        self._connect_timeout = connect_timeout
        self._connections: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def _connect(self, target: TargetHost) -> asyncssh.SSHClientConnection:
        options: Dict[str, Any] = {
            "port": target.port,
            "username": target.username,
            "connect_timeout": self._connect_timeout,
        }
        if self._known_hosts != ():
            options["known_hosts"] = self._known_hosts
        if target.key_path:
            options["client_keys"] = [target.key_path]
        elif target.password:
            options["password"] = target.password
        else:
            raise ToolFailure("ssh", "Either key_path or password must be configured for the target")
        return await asyncssh.connect(target.host, **options)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def _is_alive(connection: Any) -> bool:
        return not connection.is_closed()

    def __contains__(self, key: object) -> bool:
        return key in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    async def acquire(self, target: TargetHost) -> Any:
        """Return a live connection for the target, opening one if needed."""
        key = target.connection_key
        async with self._lock_for(key):
            connection = self._connections.get(key)
            if connection is not None:
                if self._is_alive(connection):
                    return connection
                logger.debug("Evicting dead SSH connection %s", key)
                self._connections.pop(key, None)
                connection.close()

            try:
                connection = await self._connector(target)
            except ToolFailure:
                raise
            except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
                raise ToolFailure("ssh", f"Could not connect to {key}: {e}") from e
            self._connections[key] = connection
            return connection

    async def run(self, target: TargetHost, command: str, timeout: Optional[float] = None) -> CommandResult:
        """Run a command on the target over a pooled connection."""
        started = time.monotonic()
        connection = await self.acquire(target)
        try:
            result = await connection.run(command, check=False, timeout=timeout)
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            await self.close(target.connection_key)
            raise ToolFailure("ssh", f"Command failed on {target.connection_key}: {e}") from e

        exit_code = result.exit_status if result.exit_status is not None else 1
        return CommandResult(
            stdout=str(result.stdout or ""),
            stderr=str(result.stderr or ""),
            exit_code=exit_code,
            duration=time.monotonic() - started,
        )

    async def close(self, key: str) -> None:
        """Close and forget one connection."""
        async with self._lock_for(key):
            connection = self._connections.pop(key, None)
            if connection is not None:
                connection.close()
                await connection.wait_closed()

    async def close_all(self) -> None:
        for key in list(self._connections):
            await self.close(key)


class SSHExecuteTool:
    name = "ssh-execute"
    description = "Execute a shell command on a remote host via SSH. Args: { command: string, target: string }"
    needs_target = True

    def __init__(
        self,
        pool: SSHConnectionPool,
        targets: Mapping[str, TargetHost],
        timeout: Optional[float] = 60.0,
    ):
        self.pool = pool
        self.targets = targets
        self.timeout = timeout

    def build_command(self, args: Dict[str, Any]) -> str:
        return require_str(self.name, args, "command")

    def lookup_target(self, args: Dict[str, Any]) -> TargetHost:
        target_id = require_str(self.name, args, *TARGET_KEYS)
        target = self.targets.get(target_id)
        if target is None:
            raise ToolFailure(self.name, f"Target not found: {target_id}")
        return target

    async def execute(self, args: Dict[str, Any]) -> str:
        command = self.build_command(args)
        enforce_command_policy(command)
        target = self.lookup_target(args)
        result = await self.pool.run(target, command, timeout=self.timeout)
        return result.summary()


class DockerRunTool(SSHExecuteTool):
    name = "docker-run"
    description = (
        "Run a docker or docker compose command on a remote host. "
        "Args: { command: string (without the leading 'docker'), target: string } "
        f"or {{ template: one of {', '.join(TEMPLATE_NAMES)}, params?: object, target: string }}"
    )

    def build_command(self, args: Dict[str, Any]) -> str:
        template = args.get("template")
        if template and not args.get("command"):
            command = DockerTemplates.render(str(template), args.get("params"))
        else:
            command = require_str(self.name, args, "command")
        command = command.strip()
        if command.startswith("docker "):
            command = command[len("docker "):]
        return f"docker {command}"
