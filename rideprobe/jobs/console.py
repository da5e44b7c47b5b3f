import json
import sys
from typing import Optional

from rideprobe.schemas.probe import ProbeRequest, ProbeResult
from rideprobe.services.probe_runner import ProbeRunner


def report(result: ProbeResult, out=None, err=None) -> int:
    """print the report lines, then the error summary when the probe failed.

    Returns the process exit code: 0 on success, 1 on failure.
    """
    out = out or sys.stdout
    err = err or sys.stderr

    for line in result.lines:
        print(line, file=out)

    if result.ok:
        return 0

    error = result.error
    if error is not None:
        print(f"Error: {error.kind}: {error.message}", file=err)
        if error.code is not None:
            print(f"Status: {error.code}", file=err)
        if error.body is not None:
            body = error.body if isinstance(error.body, str) else json.dumps(error.body, default=str)
            print(f"Data: {body}", file=err)
    return 1


def run_probe(request: ProbeRequest, runner: Optional[ProbeRunner] = None) -> int:
    result = (runner or ProbeRunner()).run(request)
    return report(result)
