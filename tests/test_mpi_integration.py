"""MPI integration tests - spawn actual MPI processes via run_checks."""

import pytest
from groupcomm import run_checks
from groupcomm.runner import mpiexec_available

pytestmark = pytest.mark.skipif(not mpiexec_available(), reason="mpiexec not found")

CONFIGS = {
    (2, "by_group"): dict(n_ranks=2, shape=[8], mode="by_group"),
    (2, "by_neighbor"): dict(n_ranks=2, shape=[8], mode="by_neighbor"),
    (4, "by_group"): dict(n_ranks=4, shape=[6, 6], mode="by_group"),
    (4, "by_neighbor"): dict(n_ranks=4, shape=[6, 6], mode="by_neighbor"),
    (3, "by_neighbor"): dict(n_ranks=3, shape=[5, 4], mode="by_neighbor"),
    "numba": dict(n_ranks=4, shape=[6, 6], mode="by_group", use_numba=True),
    "reorder": dict(n_ranks=3, shape=[7], mode="by_neighbor", reorder=True),
}


# Run checks once per config, reuse results
@pytest.fixture(scope="module")
def mpi_results():
    """Run all MPI configurations once."""
    return {key: run_checks(**cfg) for key, cfg in CONFIGS.items()}


CHECKS = [
    "topology", "save_load", "group0_untouched", "message_ring", "stats_balanced", "print_info",
    "bcast_layout0", "bcast_layout1", "bcast_layout2", "bcast_int32",
    "reduce_sum_layout0", "reduce_sum_layout2", "reduce_min_layout0", "reduce_min_layout2",
    "reduce_max_layout0", "reduce_max_layout2", "reduce_bor_layout0", "reduce_bor_layout2",
]


@pytest.mark.parametrize("config", list(CONFIGS))
def test_runs(mpi_results, config):
    """Every configuration should run without errors."""
    r = mpi_results[config]
    assert "error" not in r, f"Failed: {r.get('error')}"
    assert r["n_ranks"] == CONFIGS[config]["n_ranks"]


@pytest.mark.parametrize("check", CHECKS)
@pytest.mark.parametrize("config", list(CONFIGS))
def test_check_passes(mpi_results, config, check):
    r = mpi_results[config]
    assert "error" not in r, f"Failed: {r.get('error')}"
    assert r[check], f"{check} failed for {config}"


def test_reorder(mpi_results):
    assert mpi_results["reorder"]["reorder"]


def test_modes_see_same_groups(mpi_results):
    """The group structure does not depend on the message aggregation."""
    assert mpi_results[(4, "by_group")]["n_groups_total"] == mpi_results[(4, "by_neighbor")]["n_groups_total"]
    # 2x2 grid of 6x6 elements: 4 edge groups and one corner group
    assert mpi_results[(4, "by_group")]["n_groups_total"] == 5
