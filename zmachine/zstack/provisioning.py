"""Guest provisioning run once after an instance is created.

The driver only knows the hook signature. ``format_data_disk`` is the
stock hook: it partitions and formats the data disk over SSH and moves
Docker's data directory onto it.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Final

import asyncssh

from zmachine.core.exceptions import ProvisioningError
from zmachine.observability.logger import logger

from .config import SSHCredentials

type ProvisionHook = Callable[[str, SSHCredentials], Awaitable[None]]

DATA_DISK_DEVICE: Final = "/dev/vdb"
DATA_MOUNT_PATH: Final = "/mnt/data"
DOCKER_DIR: Final = "/var/lib/docker"


def data_disk_script(
    device: str = DATA_DISK_DEVICE,
    mount_path: str = DATA_MOUNT_PATH,
    docker_dir: str = DOCKER_DIR,
) -> str:
    """Shell script that partitions ``device``, mounts it and relocates Docker onto it."""
    return f"""#!/bin/bash
set -e
DEVICE="{device}"
PARTITION="${{DEVICE}}1"
MOUNT_PATH="{mount_path}"
DOCKER_DIR="{docker_dir}"

if [ ! -b "$PARTITION" ]; then
  printf 'n\\np\\n1\\n\\n\\nw\\n' | fdisk "$DEVICE"
  sleep 5
  mkfs.ext4 -i 8192 "$PARTITION"
fi

docker_was_present=0
if [ -d "$DOCKER_DIR" ] && [ ! -L "$DOCKER_DIR" ]; then
  docker_was_present=1
  /etc/init.d/docker stop || systemctl stop docker || true
  rm -rf "$DOCKER_DIR"
fi

mkdir -p "$MOUNT_PATH"
grep -q "^$PARTITION " /etc/fstab || echo "$PARTITION $MOUNT_PATH ext4 defaults 0 0" >> /etc/fstab
mount -a
mount --make-shared "$MOUNT_PATH"
mount --make-shared /
mkdir -p "$MOUNT_PATH$DOCKER_DIR"
ln -sfn "$MOUNT_PATH$DOCKER_DIR" "$DOCKER_DIR"

if [ "$docker_was_present" = 1 ]; then
  /etc/init.d/docker start || systemctl start docker
fi

df -h
"""


async def run_script(
    ip: str,
    credentials: SSHCredentials,
    script: str,
    *,
    connect_timeout: float = 30.0,
    timeout: float | None = 600.0,
) -> str:
    """Run ``script`` with bash on ``ip`` and return its stdout.

    Raises:
        ProvisioningError: Connection failed or the script exited non-zero.
    """
    log = logger.bind(provider="zstack", component="provisioning", ip=ip)
    client_keys = [credentials.key_path] if credentials.key_path else None

    try:
        conn = await asyncssh.connect(
            ip,
            port=credentials.port,
            username=credentials.user,
            password=credentials.password,
            client_keys=client_keys,
            known_hosts=None,
            connect_timeout=connect_timeout,
        )
    except (OSError, asyncssh.Error) as e:
        raise ProvisioningError(f"ssh connection to {ip} failed: {e}") from e

    try:
        log.debug("Running provisioning script")
        result = await conn.run("bash -s", input=script, timeout=timeout, check=False)
    except (OSError, asyncssh.Error) as e:
        raise ProvisioningError(f"provisioning script on {ip} failed: {e}") from e
    finally:
        conn.close()
        with contextlib.suppress(TimeoutError, asyncio.TimeoutError):
            await asyncio.wait_for(conn.wait_closed(), timeout=5.0)

    code = result.exit_status or 0
    if code != 0:
        raise ProvisioningError(f"provisioning script on {ip} exited with {code}: {result.stderr}")
    log.info("Provisioning script completed")
    return str(result.stdout or "")


async def format_data_disk(ip: str, credentials: SSHCredentials) -> None:
    await run_script(ip, credentials, data_disk_script())
