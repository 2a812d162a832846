"""
Runs one candidate program inside the sandbox child process.

Invoked by the sandbox as:

    python -I -u sandbox_bootstrap.py TARGET USAGE_FILE MAX_MEMORY_MB CPU_SECONDS MAX_CORES

Limits are applied to this process before the target runs; resource usage
is written to USAGE_FILE as JSON whether the target succeeds or raises.
Only the standard library is used here since the child runs isolated.
"""

import json
import os
import runpy
import sys
import time

if os.name == "posix":
    import resource
else:
    resource = None

MB = 1024 * 1024


def _address_space_bytes():
    try:
        with open("/proc/self/statm") as f:
            return int(f.read().split()[0]) * resource.getpagesize()
    except (OSError, ValueError, IndexError):
        return 0


def _peak_rss_mb():
    if resource is None:
        return None
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes elsewhere
    return peak / MB if sys.platform == "darwin" else peak / 1024


def apply_limits(max_memory_mb, cpu_seconds, max_cores):
    if resource is not None:
        limits = (
            ("RLIMIT_AS", _address_space_bytes() + max_memory_mb * MB),
            ("RLIMIT_CPU", cpu_seconds),
        )
        for name, value in limits:
            kind = getattr(resource, name, None)
            if kind is None:
                continue
            try:
                _, hard = resource.getrlimit(kind)
                if hard != resource.RLIM_INFINITY:
                    value = min(value, hard)
                resource.setrlimit(kind, (value, hard))
            except (ValueError, OSError) as e:
                # Limits are best-effort; the supervising timeout still applies
                print(f"sandbox: could not set {name}: {e}", file=sys.stderr)

    if hasattr(os, "sched_setaffinity"):
        try:
            available = sorted(os.sched_getaffinity(0))
            os.sched_setaffinity(0, set(available[:max_cores]))
        except OSError as e:
            print(f"sandbox: could not restrict CPU cores: {e}", file=sys.stderr)


def write_usage(usage_file, baseline_mb, cpu_seconds_used):
    peak = _peak_rss_mb()
    usage = {
        "peakMemoryMB": peak,
        "memoryMB": max(0.0, peak - baseline_mb) if peak is not None and baseline_mb is not None else None,
        "cpuTimeMs": cpu_seconds_used * 1000,
    }
    with open(usage_file, "w") as f:
        json.dump(usage, f)


def main(argv):
    target, usage_file = argv[1], argv[2]
    max_memory_mb, cpu_seconds, max_cores = int(argv[3]), int(argv[4]), int(argv[5])

    baseline_mb = _peak_rss_mb()
    apply_limits(max_memory_mb, cpu_seconds, max_cores)

    sys.argv = [target]
    cpu_start = time.process_time()
    try:
        runpy.run_path(target, run_name="__main__")
    finally:
        write_usage(usage_file, baseline_mb, time.process_time() - cpu_start)


if __name__ == "__main__":
    main(sys.argv)
