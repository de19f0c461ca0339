"""Run the group communication checks via mpiexec subprocess."""

import json
import os
import shutil
import subprocess
import sys


def mpiexec_available() -> bool:
    return shutil.which("mpiexec") is not None


def _mpiexec_args() -> list:
    """Extra launcher flags: MPIEXEC_ARGS, plus what Open MPI needs on small or root machines."""
    args = os.environ.get("MPIEXEC_ARGS", "").split()
    proc = subprocess.run(["mpiexec", "--version"], capture_output=True, text=True)
    version = (proc.stdout + proc.stderr).lower()
    if any(name in version for name in ("open mpi", "openrte", "open-mpi")):
        args.append("--oversubscribe")
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            args.append("--allow-run-as-root")
    return args


def run_checks(n_ranks: int = 2, timeout: float = 300, **kwargs) -> dict:
    """Run the correctness checks on n_ranks MPI processes.

    Parameters
    ----------
    n_ranks : int
        Number of MPI ranks
    timeout : float
        Seconds before the launch is abandoned
    **kwargs
        Check options: shape, mode, use_numba, reorder

    Returns
    -------
    dict
        Check name -> passed on all ranks, plus summary counts
        (or 'error' key on failure)
    """
    cmd = ["mpiexec", *_mpiexec_args(), "-n", str(n_ranks), sys.executable, "-m",
           "groupcomm.helpers.mpi_check", json.dumps(kwargs)]

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, env=os.environ.copy(), timeout=timeout)
    except subprocess.TimeoutExpired as e:
        return {"error": f"Timed out after {timeout}s", "stderr": e.stderr}

    if proc.returncode != 0:
        return {"error": proc.stderr}

    for line in proc.stdout.splitlines():
        if line.startswith("RESULT:"):
            return json.loads(line[len("RESULT:"):])
    return {"error": "No RESULT line in output", "stdout": proc.stdout, "stderr": proc.stderr}
