"""Shared constants for perfbench."""

# Test descriptor file extensions picked up by directory scans
DESCRIPTOR_EXTENSIONS = (".yaml", ".yml")

# Connection defaults (native protocol)
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9000
DEFAULT_DATABASE = "default"
DEFAULT_USER = "default"

# Client name reported to the server in system.processes / query_log
CLIENT_NAME = "performance-test"

# Shell command used by the flush_disk_cache precondition.
# Needs passwordless sudo on the benchmark host.
FLUSH_DISK_CACHE_COMMAND = (
    "(>&2 echo 'Flushing disk cache...') && "
    "(sudo sh -c 'echo 3 > /proc/sys/vm/drop_caches') && "
    "(>&2 echo 'Flushed.')"
)

# Reservoir size for per-query latency samples (loop mode quantiles)
SAMPLER_CAPACITY = 1 << 16

# Default precision for "average speed not changing" detection
DEFAULT_SPEED_PRECISION = 0.001
