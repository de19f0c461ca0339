"""
Group communication benchmark - runs in-process or spawns MPI based on n_ranks.

Usage:
    python run_benchmark.py
    python run_benchmark.py n_ranks=4 mode=by_group layout=2
    python run_benchmark.py --multirun n_ranks=2,4,8 mode=by_group,by_neighbor
"""

import logging
import os
import subprocess
import sys
from dataclasses import fields

import hydra
from omegaconf import DictConfig, OmegaConf

from groupcomm.datastructures import BenchmarkParams

log = logging.getLogger(__name__)


def _params_from_config(cfg: DictConfig) -> BenchmarkParams:
    """Validate the benchmark keys of the config against BenchmarkParams."""
    keys = {f.name for f in fields(BenchmarkParams)}
    merged = OmegaConf.merge(
        OmegaConf.structured(BenchmarkParams),
        {k: v for k, v in cfg.items() if k in keys},
    )
    return OmegaConf.to_object(merged)


def _log_results(cfg: DictConfig, params: BenchmarkParams, metrics, rank_info):
    """Log benchmark results to MLflow."""
    from groupcomm.tracking import (
        setup_mlflow_tracking, start_mlflow_run_context, log_parameters, log_metrics_dict, log_rank_table,
        tracking_enabled,
    )

    mode = cfg.get("mlflow", {}).get("mode", "local")
    if not tracking_enabled(mode):
        return

    setup_mlflow_tracking(mode=mode)
    shape = "x".join(map(str, params.shape))
    run_name = f"{params.mode}_p{params.n_ranks}_L{params.layout}_{params.op}"

    with start_mlflow_run_context(experiment_name=params.experiment_name, parent_run_name=shape,
                                  child_run_name=run_name):
        log_parameters(params.to_mlflow())
        log_metrics_dict(metrics.to_mlflow())
        log_rank_table(rank_info)


def _run(cfg: DictConfig, comm):
    """Run the benchmark on ``comm`` and log from rank 0."""
    from groupcomm.benchmark import run_benchmark

    params = _params_from_config(cfg)
    params.n_ranks = comm.Get_size()
    metrics, rank_info = run_benchmark(params, comm)

    if comm.Get_rank() == 0:
        log.info(f"Done: verified={metrics.verified}, bcast={metrics.bcast_time * 1e6:.1f} us, "
                 f"reduce={metrics.reduce_time * 1e6:.1f} us, {metrics.messages_per_op} msgs/op")
        _log_results(cfg, params, metrics, rank_info)


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs in-process or spawns MPI based on n_ranks."""
    params = _params_from_config(cfg)
    log.info(f"{params.mode}, shape={params.shape}, n_ranks={params.n_ranks}, layout={params.layout}, op={params.op}")

    if params.n_ranks == 1:
        from mpi4py import MPI

        _run(cfg, MPI.COMM_WORLD)
    else:
        _spawn_mpi(cfg, params.n_ranks)


def _spawn_mpi(cfg: DictConfig, n_ranks: int):
    """Spawn MPI subprocess."""
    env = os.environ.copy()
    env["MPI_SUBPROCESS"] = "1"

    cmd = ["mpiexec", "-n", str(n_ranks), sys.executable, os.path.abspath(__file__)]

    # Pass config as dotlist args
    for f in fields(BenchmarkParams):
        val = cfg.get(f.name)
        if val is None:
            continue
        if OmegaConf.is_list(val):
            val = "[" + ",".join(map(str, val)) + "]"
        cmd.append(f"{f.name}={val}")
    # quoted, so the subprocess does not read "off" as a boolean
    cmd.append(f"mlflow.mode='{cfg.get('mlflow', {}).get('mode', 'local')}'")

    timeout = cfg.get("mpi", {}).get("timeout", 600)
    result = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=timeout)
    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)


if __name__ == "__main__":
    if os.environ.get("MPI_SUBPROCESS"):
        from mpi4py import MPI

        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        _run(OmegaConf.from_dotlist(sys.argv[1:]), MPI.COMM_WORLD)
    else:
        main()
