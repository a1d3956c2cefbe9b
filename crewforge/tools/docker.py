"""
Docker Helpers
==============

Command templates for common container operations and a small
docker-compose.yml generator used by the devops role.

The templates return full ``docker ...`` command lines. docker-run renders
one by name when a step passes ``template`` (and optional ``params``)
instead of ``command``. The compose generator backs ``crewforge compose``.
"""

import shlex
from typing import Any, Dict, Mapping, Optional, Sequence

from crewforge.errors import ToolFailure


class DockerTemplates:
    """Standard docker command lines."""

    @staticmethod
    def deploy_nginx(port: int = 80, name: str = "nginx-server") -> str:
        return f"docker run -d --name {shlex.quote(name)} -p {int(port)}:80 nginx:latest"

    @staticmethod
    def list_containers(include_stopped: bool = False) -> str:
        return "docker ps -a" if include_stopped else "docker ps"

    @staticmethod
    def stop_container(name: str) -> str:
        return f"docker stop {shlex.quote(name)}"

    @staticmethod
    def start_container(name: str) -> str:
        return f"docker start {shlex.quote(name)}"

    @staticmethod
    def remove_container(name: str) -> str:
        return f"docker rm {shlex.quote(name)}"

    @staticmethod
    def view_logs(name: str, tail: int = 100) -> str:
        return f"docker logs --tail {int(tail)} {shlex.quote(name)}"

    @staticmethod
    def exec(name: str, command: str) -> str:
        return f"docker exec {shlex.quote(name)} {command}"

    @staticmethod
    def pull_image(image: str) -> str:
        return f"docker pull {shlex.quote(image)}"

    @staticmethod
    def list_images() -> str:
        return "docker images"

    @classmethod
    def render(cls, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """
        Build the command line for a named template.

        Raises:
            ToolFailure: if the template is unknown or the params do not fit it
        """
        if name not in TEMPLATE_NAMES:
            raise ToolFailure("docker-run", f"Unknown docker template: {name} (expected one of {', '.join(TEMPLATE_NAMES)})")
        try:
            return getattr(cls, name)(**dict(params or {}))
        except (TypeError, ValueError) as e:
            raise ToolFailure("docker-run", f"Bad params for docker template {name}: {e}") from e


TEMPLATE_NAMES = (
    "deploy_nginx",
    "list_containers",
    "stop_container",
    "start_container",
    "remove_container",
    "view_logs",
    "exec",
    "pull_image",
    "list_images",
)


def generate_compose_file(
    service_name: str,
    image: str,
    ports: Sequence[str] = (),
    environment: Optional[Dict[str, str]] = None,
    volumes: Sequence[str] = (),
) -> str:
    """
    Render a single-service docker-compose.yml.

    Example:
        >>> print(generate_compose_file("web", "nginx:latest", ports=["80:80"]))
        version: '3.8'
        <BLANKLINE>
        services:
          web:
            image: nginx:latest
            ports:
              - "80:80"
        <BLANKLINE>
    """
    lines = [
        "version: '3.8'",
        "",
        "services:",
        f"  {service_name}:",
        f"    image: {image}",
    ]
    if ports:
        lines.append("    ports:")
        lines.extend(f'      - "{port}"' for port in ports)
    if environment:
        lines.append("    environment:")
        lines.extend(f"      - {key}={value}" for key, value in environment.items())
    if volumes:
        lines.append("    volumes:")
        lines.extend(f"      - {volume}" for volume in volumes)
    return "\n".join(lines) + "\n"
