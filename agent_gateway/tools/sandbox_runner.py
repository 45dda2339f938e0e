"""
Entry point for sandboxed tool execution.

Launched by ``SandboxedCapability`` as ``python -I sandbox_runner.py`` with a
JSON payload on stdin. Prints a single JSON report line on stdout.
"""

import json
import sys


def _apply_limits(cpu_seconds: int, memory_mb: int) -> None:
    if sys.platform == "win32":
        # No rlimits; the parent's timeout still applies.
        return
    import resource

    resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
    if memory_mb > 0:
        limit = memory_mb * 1024 * 1024
        resource.setrlimit(resource.RLIMIT_AS, (limit, limit))


def main() -> int:
    payload = json.loads(sys.stdin.read())
    _apply_limits(payload.get("cpu_seconds", 10), payload.get("memory_mb", 0))

    namespace: dict = {"__name__": "tool_sandbox"}
    try:
        exec(compile(payload["source"], "<tool>", "exec"), namespace)
        result = namespace[payload["function"]](*payload["args"])
        report = {"success": True, "result": result}
        line = json.dumps(report, default=str)
    except BaseException as e:
        line = json.dumps({"success": False, "errorMessage": str(e) or type(e).__name__})

    sys.stdout.write(line + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
