"""
Keeps the local archive mirror current by driving the external mirroring tool
(`stellar-archivist`).

Usage:
    syncer = ArchiveSyncer("/srv/har/live", "http://history.example/live", "stellar-archivist")
    exit_code = syncer.sync_once()          # one-shot
    syncer.run_forever(interval_seconds=300)  # recurring, never raises on a failed run

Only one sync runs at a time per syncer: a request arriving while a sync is
in flight is a no-op.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import threading
from typing import Callable, List, Optional

from har_ingest.errors import SyncToolError
from har_ingest.utils.logging import get_logger

log = get_logger(__name__)

_STATUS_RE = re.compile(r"CurrentLedger:\s*(\d+)")


def parse_status_output(output: str) -> int:
    """Extract the latest checkpoint from `<tool> status` output."""
    match = _STATUS_RE.search(output)
    if not match:
        raise SyncToolError(f"Could not find CurrentLedger in status output: {output.strip()!r}")
    return int(match.group(1))


class ArchiveSyncer:
    """
    Mirror a remote history archive into a local directory.

    Parameters
    ----------
    local_path : str
        Local archive root (plain directory path).
    remote_path : str
        Remote archive URL.
    tool_path : str
        Path or PATH name of the mirroring tool.
    """

    def __init__(self, local_path: str, remote_path: str, tool_path: str) -> None:
        self.local_path = local_path
        self.remote_path = remote_path
        self.tool_path = tool_path
        self._guard = threading.Lock()
        self._process: Optional[subprocess.Popen] = None

    @property
    def local_location(self) -> str:
        return f"file://{os.path.abspath(self.local_path)}"

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def _resolve_tool(self) -> str:
        resolved = shutil.which(self.tool_path)
        if resolved is None:
            raise SyncToolError(f"stellar-archivist not at given path: {self.tool_path}")
        return resolved

    def status_of(self, location: str) -> int:
        """Latest fully written checkpoint of a local (file://) or remote archive."""
        cmd = [self._resolve_tool(), "status", location]
        try:
            completed = subprocess.run(
                cmd, capture_output=True, text=True, errors="replace", check=False
            )
        except OSError as exc:
            raise SyncToolError(f"Failed to run {' '.join(cmd)}: {exc}") from exc
        if completed.returncode != 0:
            raise SyncToolError(
                f"Status of {location} failed: {completed.stderr.strip() or completed.stdout.strip()}",
                exit_code=completed.returncode,
            )
        return parse_status_output(completed.stdout)

    def status_local(self) -> int:
        return self.status_of(self.local_location)

    def status_remote(self) -> int:
        return self.status_of(self.remote_path)

    def mirror_command(self, from_ledger: int) -> List[str]:
        return [
            self._resolve_tool(),
            "--low",
            str(from_ledger),
            "mirror",
            self.remote_path,
            self.local_location,
        ]

    def sync(self) -> int:
        """
        Mirror everything newer than the local status and return the tool's exit code.

        Output is streamed into the log line by line, with undecodable bytes
        replaced. If the caller is interrupted the tool is terminated before
        the interruption propagates.
        """
        from_ledger = self.status_local()
        cmd = self.mirror_command(from_ledger)
        log.info(f"Running: {' '.join(cmd)}", extra={"from_ledger": from_ledger})

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise SyncToolError(f"Failed to run {' '.join(cmd)}: {exc}") from exc
        self._process = proc
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                log.info(f"[archivist] {line.rstrip()}")
            exit_code = proc.wait()
        except BaseException:
            proc.terminate()
            proc.wait()
            raise
        finally:
            self._process = None

        log.info(f"stellar-archivist process exited with code {exit_code}")
        return exit_code

    def sync_once(self) -> Optional[int]:
        """
        Run `sync` unless one is already in flight.

        Returns the exit code, or None when skipped because a sync is running.
        """
        if not self._guard.acquire(blocking=False):
            log.info("Sync already running; skipping this request")
            return None
        try:
            log.info("Sync started ...")
            exit_code = self.sync()
            log.info(f"Sync finished. exit: {exit_code}")
            return exit_code
        finally:
            self._guard.release()

    def sync_logged(self) -> Optional[int]:
        """`sync_once` for recurring mode: failures are logged, never raised."""
        try:
            exit_code = self.sync_once()
        except SyncToolError as exc:
            log.error(f"Sync failed: {exc}", extra={"exit_code": exc.exit_code})
            return exc.exit_code
        if exit_code:
            log.error(f"Sync failed with exit code {exit_code}", extra={"exit_code": exit_code})
        return exit_code

    def terminate(self) -> None:
        """Stop an in-flight mirroring process, if any."""
        proc = self._process
        if proc is not None and proc.poll() is None:
            proc.terminate()

    def _spawn(self, target: Callable[[], object]) -> threading.Thread:
        thread = threading.Thread(target=target, name="archive-sync", daemon=True)
        thread.start()
        return thread

    def run_forever(
        self,
        interval_seconds: float,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Sync now, then on every tick of `interval_seconds` until `stop_event` is set.

        Each tick runs on its own thread; ticks that land while a sync is still
        running are skipped by the single-flight guard.
        """
        stop = stop_event or threading.Event()
        log.info(f"Schedule recurring sync job to run every {interval_seconds / 60:g} minutes")
        while not stop.is_set():
            self._spawn(self.sync_logged)
            if stop.wait(interval_seconds):
                break
        self.terminate()


__all__ = ["ArchiveSyncer", "parse_status_output"]
