"""Solve-time benchmarks for the double integrator examples.

The first solve of every problem size includes JIT compilation of the step
kernels and is reported separately from the warm timings.
"""

import gc
import time
from collections.abc import Callable

import jax
import numpy as np

from jaxddp import SolverResult


def benchmark_solver(
    solve_function: Callable[[], SolverResult],
    name: str,
    timing_runs: int = 5,
) -> dict[str, float]:
    """Time a solve once cold and ``timing_runs`` times warm.

    Args:
        solve_function: Builds a fresh problem and solves it
        name: Label printed with the results
        timing_runs: Number of warm solves

    Returns:
        Cold time, warm mean/std and the mean solver-reported time, in seconds
    """
    print(f"\n--- {name} ---")

    start = time.perf_counter()
    result = solve_function()
    cold = time.perf_counter() - start
    print(f"  cold: {cold:.3f}s ({result.status.value}, {result.iterations} iterations)")

    wall = np.zeros(timing_runs)
    reported = np.zeros(timing_runs)
    for i in range(timing_runs):
        gc.collect()
        start = time.perf_counter()
        result = solve_function()
        wall[i] = time.perf_counter() - start
        reported[i] = result.solve_time / 1000.0

    summary = {
        "cold": cold,
        "warm_mean": float(wall.mean()),
        "warm_std": float(wall.std()),
        "solve_mean": float(reported.mean()),
    }
    print(
        f"  warm: {summary['warm_mean']:.3f}s +/- {summary['warm_std']:.3f}s "
        f"(solver reports {summary['solve_mean']:.3f}s, backend {jax.default_backend()})"
    )
    return summary


def benchmark_scaling(constrained: bool = False) -> dict[int, dict[str, float]]:
    """Warm solve time against the number of knot points."""
    from example_double_integrator import create_double_integrator_problem

    from jaxddp import solve

    u_max = 0.5 if constrained else None
    label = "constrained" if constrained else "unconstrained"
    results = {}
    for num_knots in (26, 51, 101, 201):

        def solve_function(num_knots=num_knots):
            return solve(create_double_integrator_problem(num_knots, u_max=u_max))

        results[num_knots] = benchmark_solver(
            solve_function, f"{label}, N = {num_knots}", timing_runs=3
        )

    print(f"\nScaling ({label}):")
    for num_knots, summary in results.items():
        per_knot = summary["warm_mean"] / num_knots * 1000
        print(f"  N = {num_knots:4d}: {summary['warm_mean']:7.3f}s, {per_knot:6.2f} ms/knot")
    return results


if __name__ == "__main__":
    benchmark_scaling(constrained=False)
    benchmark_scaling(constrained=True)
