"""Single-rank tests for the benchmark driver, verification helpers and tracking table."""

import numpy as np
import pytest
from mpi4py import MPI
from omegaconf import OmegaConf

from groupcomm import BenchmarkMetrics, BenchmarkParams, RankInfo
from groupcomm.benchmark import build_communicator, check_bcast, check_reduce, run_benchmark
from groupcomm.tracking import rank_table, tracking_enabled


@pytest.fixture(scope="module")
def single_rank():
    return build_communicator([6, 4], MPI.COMM_SELF)


@pytest.mark.parametrize("layout", [0, 1, 2])
def test_check_bcast(single_rank, layout):
    part, gc = single_rank
    assert check_bcast(gc, part, layout)


@pytest.mark.parametrize("op_name, dtype", [("sum", np.float64), ("min", np.float32), ("bor", np.int32)])
@pytest.mark.parametrize("layout", [0, 2])
def test_check_reduce(single_rank, op_name, dtype, layout):
    part, gc = single_rank
    assert check_reduce(gc, part, op_name, layout, dtype)


@pytest.fixture(scope="module")
def result():
    params = BenchmarkParams(shape=[8, 8], n_iter=3, n_warmup=1)
    return run_benchmark(params, MPI.COMM_SELF)


class TestRunBenchmark:
    """run_benchmark on COMM_SELF."""

    def test_verified(self, result):
        metrics, _ = result
        assert metrics.verified
        assert metrics.messages_per_op == 0
        assert metrics.bcast_time >= 0

    def test_rank_info(self, result):
        _, rank_info = result
        assert len(rank_info) == 1
        assert rank_info[0].n_ldofs == 81
        assert rank_info[0].n_neighbors == 0

    def test_invalid_layout(self):
        with pytest.raises(ValueError):
            run_benchmark(BenchmarkParams(layout=1), MPI.COMM_SELF)

    def test_integer_op_on_float(self):
        with pytest.raises(TypeError):
            run_benchmark(BenchmarkParams(op="bor"), MPI.COMM_SELF)


class TestDataStructures:
    """MLflow conversions."""

    def test_params_to_mlflow(self):
        params = BenchmarkParams(shape=[4, 8], use_numba=True)
        d = params.to_mlflow()
        assert d["shape"] == "4x8"
        assert d["use_numba"] == 1
        assert d["environment"] in ("hpc", "local")

    def test_metrics_drop_none(self):
        d = BenchmarkMetrics(verified=True, bcast_time=1.0).to_mlflow()
        assert d["verified"] == 1
        assert "reduce_time" not in d

    def test_rank_table(self):
        df = rank_table([RankInfo(rank=1, hostname="b", cpu_ids=[2, 3]), RankInfo(rank=0, hostname="a")])
        assert df["rank"].tolist() == [0, 1]
        assert df["cpu_ids"].tolist() == ["", "2,3"]


class TestTrackingMode:
    """mlflow.mode as it arrives from the config or a forwarded override."""

    @pytest.mark.parametrize("mode, enabled", [("local", True), ("databricks", True), ("off", False), (False, False)])
    def test_tracking_enabled(self, mode, enabled):
        assert tracking_enabled(mode) is enabled

    def test_bare_off_override(self):
        mode = OmegaConf.from_dotlist(["mlflow.mode=off"]).mlflow.mode
        assert not tracking_enabled(mode)

    def test_quoted_off_override_stays_a_string(self):
        assert OmegaConf.from_dotlist(["mlflow.mode='off'"]).mlflow.mode == "off"
