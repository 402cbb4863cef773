"""Escape-time evaluation of the Mandelbrot recurrence."""

from __future__ import annotations

import numpy as np
import tensorflow as tf

HORIZON = 4
DEVICE = "/CPU:0"


def escape_iterations(x0: float, y0: float, max_iterations: int) -> int:
    """Return how many iterations of ``z = z**2 + c`` run before ``|z|**2 > 4``.

    The bound is tested before each update, so z = 0 always takes one step and a
    point with ``|c|**2 > 4`` returns 1. Points that never escape return
    ``max_iterations``.
    """

    x = 0.0
    y = 0.0
    iteration = 0
    while x * x + y * y <= HORIZON and iteration < max_iterations:
        x_temp = x * x - y * y + x0
        y = 2 * x * y + y0
        x = x_temp
        iteration += 1
    return iteration


@tf.function(reduce_retracing=True)
def _escape_step(
    xs: tf.Tensor,
    ys: tf.Tensor,
    x0: tf.Tensor,
    y0: tf.Tensor,
    ns: tf.Tensor,
    active: tf.Tensor,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance the recurrence for points that are still iterating."""

    xs_new = xs * xs - ys * ys + x0
    ys_new = 2.0 * xs * ys + y0
    xs = tf.where(active, xs_new, xs)
    ys = tf.where(active, ys_new, ys)
    ns = ns + tf.cast(active, tf.int32)
    return xs, ys, ns


@tf.function(reduce_retracing=True)
def _escape_run(x0: tf.Tensor, y0: tf.Tensor, max_iterations: tf.Tensor) -> tf.Tensor:
    """Iterate every point with a TensorFlow while loop until none is active."""

    horizon = tf.constant(HORIZON, dtype=tf.float64)
    xs = tf.zeros_like(x0)
    ys = tf.zeros_like(y0)
    ns = tf.zeros_like(x0, dtype=tf.int32)

    def still_active(xs: tf.Tensor, ys: tf.Tensor, ns: tf.Tensor) -> tf.Tensor:
        return tf.logical_and(xs * xs + ys * ys <= horizon, ns < max_iterations)

    def cond(xs: tf.Tensor, ys: tf.Tensor, ns: tf.Tensor, active: tf.Tensor) -> tf.Tensor:
        return tf.reduce_any(active)

    def body(xs: tf.Tensor, ys: tf.Tensor, ns: tf.Tensor, active: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
        xs, ys, ns = _escape_step(xs, ys, x0, y0, ns, active)
        return xs, ys, ns, still_active(xs, ys, ns)

    _, _, ns, _ = tf.while_loop(cond, body, (xs, ys, ns, still_active(xs, ys, ns)))
    return ns


def escape_iterations_grid(x0: np.ndarray, y0: np.ndarray, max_iterations: int) -> np.ndarray:
    """Vectorized :func:`escape_iterations` over equally shaped coordinate arrays."""

    x0 = np.asarray(x0, dtype=np.float64)
    y0 = np.asarray(y0, dtype=np.float64)
    if x0.shape != y0.shape:
        raise ValueError(f"coordinate arrays differ in shape: {x0.shape} vs {y0.shape}")
    if x0.size == 0:
        return np.zeros(x0.shape, dtype=np.int32)

    with tf.device(DEVICE):
        ns = _escape_run(
            tf.convert_to_tensor(x0, dtype=tf.float64),
            tf.convert_to_tensor(y0, dtype=tf.float64),
            tf.constant(max_iterations, dtype=tf.int32),
        )
    return ns.numpy()
