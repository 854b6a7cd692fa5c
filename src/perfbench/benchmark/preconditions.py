"""Environment checks performed before a test is allowed to run."""

from __future__ import annotations

import logging
import subprocess

import psutil

from perfbench._constants import FLUSH_DISK_CACHE_COMMAND
from perfbench.config.schema import FlushDiskCache, RamSize, TableExists, TestSpec
from perfbench.errors import PreconditionUnsupportedError

from .executor import DatabaseClient

logger = logging.getLogger(__name__)


def detect_memory() -> int:
    """Total physical memory in bytes, or 0 when it cannot be determined."""
    try:
        return int(psutil.virtual_memory().total)
    except (NotImplementedError, OSError):
        return 0


class PreconditionChecker:
    """Evaluates a test's preconditions in declaration order.

    A failed cache flush rejects the test immediately.  Memory and table
    checks are all evaluated and the test is rejected if any of them
    failed.  Problems are logged, never raised, except when a check
    cannot be performed on this platform at all.
    """

    def __init__(self, client: DatabaseClient, flush_command: str = FLUSH_DISK_CACHE_COMMAND):
        self.client = client
        self.flush_command = flush_command

    def check(self, spec: TestSpec) -> bool:
        ok = True
        for precondition in spec.preconditions:
            if isinstance(precondition, FlushDiskCache):
                if not self._flush_disk_cache():
                    return False
            elif isinstance(precondition, RamSize):
                ok = self._ram_size(precondition) and ok
            elif isinstance(precondition, TableExists):
                ok = self._table_exists(precondition) and ok
            else:
                raise TypeError(f"Unhandled precondition: {precondition!r}")
        return ok

    def _flush_disk_cache(self) -> bool:
        result = subprocess.run(self.flush_command, shell=True)
        if result.returncode != 0:
            logger.error("Failed to flush disk cache (exit status %d)", result.returncode)
            return False
        return True

    def _ram_size(self, precondition: RamSize) -> bool:
        actual = detect_memory()
        if not actual:
            raise PreconditionUnsupportedError(
                "ram_size precondition not available on this platform"
            )
        if precondition.bytes > actual:
            logger.error("Not enough RAM: need = %d, present = %d", precondition.bytes, actual)
            return False
        return True

    def _table_exists(self, precondition: TableExists) -> bool:
        if not self.client.exists_table(precondition.table):
            logger.error("Table %s doesn't exist", precondition.table)
            return False
        return True
