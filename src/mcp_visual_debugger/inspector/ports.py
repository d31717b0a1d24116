"""Best-effort reclaiming of the inspector's fixed ports.

A crashed run can leave the inspector (or its proxy) listening on 6274/6277,
and the next inspector then refuses to bind. Killing the stale owners first is
a mitigation only: another process may grab a port between the kill and the
next bind, so callers must still handle PortInUseError.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Iterable, List, Optional, Set

import psutil

logger = logging.getLogger(__name__)


def find_port_owners(ports: Iterable[int]) -> Set[int]:
    """Return the PIDs of processes listening on any of the given ports.

    Raises psutil.AccessDenied on platforms that restrict connection listing
    (macOS without root); the caller decides how to degrade.
    """
    wanted = set(ports)
    pids: Set[int] = set()
    for conn in psutil.net_connections(kind="inet"):
        if not conn.laddr or conn.pid is None:
            continue
        if conn.laddr.port in wanted and conn.status == psutil.CONN_LISTEN:
            pids.add(conn.pid)
    return pids


def _find_port_owners_per_process(ports: Iterable[int]) -> Set[int]:
    """Slower fallback: walk processes and inspect their own sockets."""
    wanted = set(ports)
    pids: Set[int] = set()
    for proc in psutil.process_iter(["pid"]):
        try:
            for conn in proc.net_connections(kind="inet"):
                if conn.laddr and conn.laddr.port in wanted and conn.status == psutil.CONN_LISTEN:
                    pids.add(proc.pid)
                    break
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return pids


class PortReclaimer:
    """Terminates whatever is bound to the inspector ports. Never raises."""

    def __init__(self, settle_delay: float = 1.0, kill_grace: float = 2.0,
                 owner_finder: Optional[Callable[[Iterable[int]], Set[int]]] = None):
        self.settle_delay = settle_delay
        self.kill_grace = kill_grace
        self._owner_finder = owner_finder

    def _owners(self, ports: List[int]) -> Set[int]:
        if self._owner_finder is not None:
            return self._owner_finder(ports)
        try:
            return find_port_owners(ports)
        except psutil.AccessDenied:
            logger.debug("System-wide connection listing denied, scanning processes individually")
            return _find_port_owners_per_process(ports)

    def _terminate(self, pid: int) -> bool:
        if pid == os.getpid():
            logger.warning(f"Refusing to terminate the harness itself (PID {pid})")
            return False
        try:
            proc = psutil.Process(pid)
            name = proc.name()
            proc.terminate()
            try:
                proc.wait(timeout=self.kill_grace)
            except psutil.TimeoutExpired:
                logger.info(f"PID {pid} ({name}) ignored SIGTERM, killing")
                proc.kill()
                proc.wait(timeout=self.kill_grace)
            logger.info(f"Terminated stale process {pid} ({name})")
            return True
        except psutil.NoSuchProcess:
            logger.debug(f"PID {pid} already gone")
        except psutil.AccessDenied:
            logger.warning(f"Permission denied terminating PID {pid}")
        except psutil.TimeoutExpired:
            logger.warning(f"PID {pid} still alive after SIGKILL")
        return False

    def reclaim_sync(self, ports: Iterable[int]) -> List[int]:
        """Terminate port owners. Returns the PIDs that were terminated."""
        ports = sorted(set(ports))
        if not ports:
            return []
        try:
            owners = self._owners(ports)
        except Exception as e:
            logger.warning(f"Could not list owners of ports {ports}: {e}")
            return []

        if not owners:
            logger.info(f"No existing processes on ports {ports}")
            return []

        killed = []
        for pid in sorted(owners):
            try:
                if self._terminate(pid):
                    killed.append(pid)
            except Exception as e:
                logger.warning(f"Unexpected error terminating PID {pid}: {e}")
        return killed

    async def reclaim(self, ports: Iterable[int]) -> List[int]:
        """Reclaim ports off the event loop, then wait for the OS to release them."""
        try:
            killed = await asyncio.to_thread(self.reclaim_sync, list(ports))
        except Exception as e:
            logger.warning(f"Port reclaim failed: {e}")
            killed = []
        if killed:
            logger.info(f"Cleaned up existing inspector processes: {killed}")
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)
        return killed
