"""MLflow helpers for benchmark tracking.

- Setting up MLflow tracking (local or Databricks).
- Orchestrating MLflow runs (context manager for parent/nested runs).
- Logging parameters, metrics, and the per-rank topology table.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import List

import mlflow
import pandas as pd

from .datastructures import RankInfo

log = logging.getLogger(__name__)


def tracking_enabled(mode) -> bool:
    """False for mode "off". A bare ``off`` in a dotlist override is read as False."""
    return str(mode).lower() not in ("off", "false", "none")


def setup_mlflow_tracking(mode: str = "local"):
    """
    Configures MLflow tracking.

    Parameters
    ----------
    mode : str
        "databricks" or "local".
    """
    if mode == "databricks":
        try:
            mlflow.login(backend="databricks", interactive=False)
            mlflow.set_tracking_uri("databricks")
            log.info("Connected to Databricks MLflow tracking.")
        except Exception as e:
            raise RuntimeError(
                "MLflow Databricks setup failed. Ensure credentials are configured."
            ) from e
    elif mode == "local":
        mlruns_uri = f"file://{Path.cwd() / 'mlruns'}"
        mlflow.set_tracking_uri(mlruns_uri)
        log.info(f"Using local file-based MLflow tracking backend: {mlruns_uri}")
    else:
        log.warning(f"Unknown MLflow mode '{mode}'. Using existing URI: {mlflow.get_tracking_uri()}")


@contextmanager
def start_mlflow_run_context(
    experiment_name: str,
    parent_run_name: str,
    child_run_name: str,
    project_prefix: str = "/Shared/groupcomm",
):
    """
    Context manager to start a nested MLflow run under a (reused) parent run.
    """
    if mlflow.get_tracking_uri() == "databricks" and not experiment_name.startswith("/"):
        experiment_name = f"{project_prefix}/{experiment_name}"

    exp = mlflow.set_experiment(experiment_name)
    log.info(f"Using MLflow experiment: {experiment_name}")

    client = mlflow.tracking.MlflowClient()
    parent_runs = client.search_runs(
        experiment_ids=[exp.experiment_id],
        filter_string=f"tags.mlflow.runName = '{parent_run_name}' AND tags.is_parent = 'true'",
        max_results=1,
    )
    parent_run_id = parent_runs[0].info.run_id if parent_runs else None

    with mlflow.start_run(
        run_id=parent_run_id, run_name=parent_run_name, tags={"is_parent": "true"}
    ):
        with mlflow.start_run(run_name=child_run_name, nested=True) as child_run:
            # Tag run with environment (HPC vs local) for easy filtering
            env = (
                "hpc"
                if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
                else "local"
            )
            mlflow.set_tag("environment", env)
            log.info(f"Started MLflow run '{child_run.info.run_name}' ({child_run.info.run_id}) [{env}]")
            yield child_run


def log_parameters(params: dict):
    """Log a dictionary of parameters to the active MLflow run."""
    mlflow.log_params(params)


def log_metrics_dict(metrics: dict):
    """Log a dictionary of metrics to the active MLflow run, filtering out None values."""
    filtered_metrics = {k: v for k, v in metrics.items() if v is not None}
    mlflow.log_metrics(filtered_metrics)


def rank_table(rank_info: List[RankInfo]) -> pd.DataFrame:
    """One row per rank, CPU ids joined into a string."""
    df = pd.DataFrame([asdict(info) for info in rank_info])
    df["cpu_ids"] = df["cpu_ids"].apply(lambda ids: ",".join(map(str, ids)) if ids else "")
    return df.sort_values("rank").reset_index(drop=True)


def log_rank_table(rank_info: List[RankInfo], artifact_file: str = "ranks.json"):
    """Log the per-rank topology table and the node count of the run."""
    df = rank_table(rank_info)
    mlflow.log_table(df, artifact_file=artifact_file)
    log_parameters({"nodes": df["hostname"].nunique()})
