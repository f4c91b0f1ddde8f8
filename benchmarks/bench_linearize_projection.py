# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.

import time
import warnings

from bad_jit.core.values import Values
from bad_jit.expression import ExpressionGraph, leaf, project, transform_to, uncalibrate
from bad_jit.slam.expression_factor import ExpressionFactor
from bad_jit.slam.manifold import Cal3_S2, Point2, Point3, Pose3
from bad_jit.slam.measurements import GeneralSFMFactor
from bad_jit.slam.noise import Unit


def build_values() -> Values:
    values = Values()
    values.insert(1, Pose3.identity())
    values.insert(2, Point3(0.2, -0.1, 3.0))
    values.insert(3, Cal3_S2(fx=500.0, fy=500.0, s=0.0, u0=320.0, v0=240.0))
    return values


def time_linearize(factor, values: Values, repeats: int) -> float:
    # warmup (dispatch caches)
    factor.linearize(values)

    t0 = time.time()
    for _ in range(repeats):
        factor.linearize(values)
    t1 = time.time()
    return (t1 - t0) / repeats


def run_benchmark(repeats: int = 200):
    print("=== Projection factor linearization benchmark ===")
    print(f"repeats = {repeats}")

    values = build_values()
    measured = Point2(330.0, 230.0)
    model = Unit.create(2)

    g = ExpressionGraph()
    uv = uncalibrate(leaf(g, 3, Cal3_S2), project(transform_to(leaf(g, 1, Pose3), leaf(g, 2, Point3))))
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        expression_factor = ExpressionFactor(measured, uv, model)
    reference = GeneralSFMFactor(measured, model, 1, 2, 3)

    t_expr = time_linearize(expression_factor, values, repeats)
    t_ref = time_linearize(reference, values, repeats)

    print(f"ExpressionFactor: {t_expr * 1e3:.3f} ms / linearize")
    print(f"GeneralSFMFactor: {t_ref * 1e3:.3f} ms / linearize")
    print(f"ratio:            {t_expr / t_ref:.2f}x")

    same = expression_factor.linearize(values).equals(reference.linearize(values), 1e-9)
    print(f"linearizations agree: {same}")


if __name__ == "__main__":
    run_benchmark(repeats=200)
