"""Deploy keys and ssh client configuration for environment repositories."""

from __future__ import annotations

import os
from dataclasses import dataclass

SSH_KEY_PATH = "/ssh-keys"
SSH_CONFIG_PATH = "/etc/ssh/ssh_config"


@dataclass
class EnvParams:
    """An environment: its namespace, git URL and deploy key."""

    namespace: str
    git_url: str = ""
    git_rsa_key: str = ""


def ssh_host_config(host, namespace, key_dir=SSH_KEY_PATH) -> str:
    """Return the ssh config block that maps ``namespace`` to ``host``."""
    lines = [f"Host {namespace}"]
    if ":" in host:
        parts = host.split(":")
        lines.append(f"  HostName {parts[0]}")
        lines.append(f"  Port {parts[1]}")
    else:
        lines.append(f"  HostName {host}")
    lines += [
        "  StrictHostKeyChecking no",
        "  UserKnownHostsFile /dev/null",
        f"  IdentityFile {key_dir}/rsa-{namespace}",
        "  LogLevel error",
    ]
    return "\n".join(lines) + "\n"


def _replace_file(path: str, content: str, mode: int) -> None:
    if os.path.exists(path):
        os.remove(path)
    fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)


def write_ssh_key(key_dir, name, key) -> str:
    """Write the deploy key for ``name`` readable by the owner only; return its path."""
    path = f"{key_dir}/rsa-{name}"
    _replace_file(path, key, 0o600)
    return path


def write_ssh_config(path, content) -> None:
    """Replace the ssh client configuration at ``path``."""
    _replace_file(path, content, 0o666)


def prepare_ssh_keys(envs, git_host, key_dir=SSH_KEY_PATH, config_path=SSH_CONFIG_PATH) -> str:
    """Write every environment's key and an ssh config covering them; return the config."""
    content = ""
    for env in envs:
        write_ssh_key(key_dir, env.namespace, env.git_rsa_key)
        content += ssh_host_config(git_host, env.namespace, key_dir)
    write_ssh_config(config_path, content)
    return content