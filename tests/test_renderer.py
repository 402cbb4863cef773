import math
import threading

import numpy as np
import pytest

import escapetime.renderer as renderer
from escapetime import (
    GenerationParams,
    InternalFailure,
    InvalidParameters,
    RowBand,
    compute_viewport,
    escape_iterations,
    iter_bands,
    map_color,
    pixel_to_complex,
    plan_bands,
    progress_percent,
    render_full,
    render_progressive,
)


def _collect(params, **kwargs):
    events = []
    render_progressive(
        params,
        lambda pixels, band, progress: events.append(("band", pixels, band, progress)),
        lambda: events.append(("complete",)),
        **kwargs,
    )
    return events


def test_viewport_is_centred_and_follows_aspect_ratio():
    square = compute_viewport(GenerationParams(4, 4, 10))
    assert (square.min_x, square.max_x, square.min_y, square.max_y) == (-1.75, 1.75, -1.75, 1.75)

    wide = compute_viewport(GenerationParams(400, 200, 10, zoom=2.0, center_x=-0.5, center_y=0.25))
    assert wide.min_x == pytest.approx(-1.375)
    assert wide.max_x == pytest.approx(0.375)
    assert wide.min_y == pytest.approx(-0.1875)
    assert wide.max_y == pytest.approx(0.6875)


def test_pixel_to_complex_uses_left_and_top_edges():
    params = GenerationParams(4, 4, 10)
    viewport = compute_viewport(params)
    assert pixel_to_complex(params, viewport, 0, 0) == (-1.75, -1.75)
    assert pixel_to_complex(params, viewport, 2, 2) == (0.0, 0.0)


def test_plan_bands_partitions_rows():
    assert [b.start_row for b in plan_bands(100)] == [0, 20, 40, 60, 80]
    assert [b.height for b in plan_bands(45)] == [20, 20, 5]
    assert plan_bands(7) == [RowBand(0, 7)]
    assert plan_bands(10, band_rows=3)[-1] == RowBand(9, 1)


def test_plan_bands_rejects_non_positive_size():
    with pytest.raises(InvalidParameters):
        plan_bands(10, band_rows=0)


def test_progress_rounds_half_up():
    assert progress_percent(20, 100) == 20
    assert progress_percent(45, 45) == 100
    assert progress_percent(1, 8) == 13
    assert progress_percent(1, 3) == 33


@pytest.mark.parametrize(
    "params",
    [
        GenerationParams(0, 4, 10),
        GenerationParams(4, 0, 10),
        GenerationParams(4, 4, 0),
        GenerationParams(4, 4, 10, zoom=0.0),
        GenerationParams(4, 4, 10, zoom=-2.0),
        GenerationParams(4, 4, 10, zoom=math.nan),
        GenerationParams(True, 4, 10),
        GenerationParams(4.5, 4, 10),
        GenerationParams(4, 4, 10, center_x=math.inf),
    ],
)
def test_invalid_parameters_are_rejected_before_any_output(params):
    with pytest.raises(InvalidParameters):
        render_full(params)

    events = []
    with pytest.raises(InvalidParameters):
        render_progressive(params, lambda *args: events.append(args), lambda: events.append("complete"))
    assert events == []


def test_unknown_backend_is_rejected():
    with pytest.raises(InvalidParameters):
        render_full(GenerationParams(4, 4, 10), backend="cuda")


def test_small_image_is_deterministic():
    params = GenerationParams(4, 4, 10, zoom=1.0, center_x=0.0, center_y=0.0)
    first = render_full(params)
    second = render_full(params)

    assert first.shape == (4, 4, 4)
    assert first.dtype == np.uint8
    assert first.flags["C_CONTIGUOUS"]
    assert np.all(first[..., 3] == 255)
    assert first.tobytes() == second.tobytes()
    assert len(first.tobytes()) == 64


def test_pixels_match_scalar_pipeline():
    params = GenerationParams(9, 7, 25, zoom=1.3, center_x=-0.6, center_y=0.1)
    viewport = compute_viewport(params)
    image = render_full(params)
    for py in range(params.pixel_height):
        for px in range(params.pixel_width):
            x0, y0 = pixel_to_complex(params, viewport, px, py)
            expected = map_color(escape_iterations(x0, y0, params.max_iterations), params.max_iterations)
            assert tuple(int(c) for c in image[py, px, :3]) == expected


def test_python_backend_matches_tensorflow_backend():
    params = GenerationParams(9, 7, 25, zoom=1.3, center_x=-0.6, center_y=0.1)
    np.testing.assert_array_equal(render_full(params, backend="python"), render_full(params))


@pytest.mark.parametrize(
    "params,band_rows",
    [
        (GenerationParams(4, 4, 10), 20),
        (GenerationParams(37, 45, 40, zoom=1.5, center_x=-0.7, center_y=0.2), 20),
        (GenerationParams(16, 23, 30, center_x=-0.5), 3),
        (GenerationParams(5, 1, 8), 20),
    ],
)
def test_progressive_output_equals_whole_image(params, band_rows):
    events = _collect(params, band_rows=band_rows)
    bands = [event for event in events if event[0] == "band"]

    stitched = np.concatenate([pixels for _, pixels, _, _ in bands], axis=0)
    np.testing.assert_array_equal(stitched, render_full(params))
    assert events[-1] == ("complete",)


def test_progressive_scenario_delivers_five_bands_then_completes():
    params = GenerationParams(100, 100, 50, zoom=1.0, center_x=-0.5, center_y=0.0)
    events = _collect(params)

    kinds = [event[0] for event in events]
    assert kinds == ["band"] * 5 + ["complete"]
    bands = [event[2] for event in events[:-1]]
    assert [band.start_row for band in bands] == [0, 20, 40, 60, 80]
    assert all(event[1].shape == (20, 100, 4) for event in events[:-1])

    progress = [event[3] for event in events[:-1]]
    assert progress == [20, 40, 60, 80, 100]


def test_progress_is_non_decreasing_and_ends_at_100():
    params = GenerationParams(11, 67, 12)
    progress = [event[3] for event in _collect(params, band_rows=7) if event[0] == "band"]
    assert progress == sorted(progress)
    assert progress[-1] == 100


def test_band_buffers_are_independent():
    params = GenerationParams(8, 50, 12)
    buffers = [event[1] for event in _collect(params) if event[0] == "band"]
    for i, first in enumerate(buffers):
        for second in buffers[i + 1:]:
            assert not np.shares_memory(first, second)


def test_parallel_workers_keep_band_order():
    params = GenerationParams(24, 90, 35, zoom=1.2, center_x=-0.6)
    results = list(iter_bands(params, band_rows=7, workers=4))

    assert [r.band.start_row for r in results] == list(range(0, 90, 7))
    stitched = np.concatenate([r.pixels for r in results], axis=0)
    np.testing.assert_array_equal(stitched, render_full(params))


def test_invalid_worker_count():
    with pytest.raises(InvalidParameters):
        list(iter_bands(GenerationParams(4, 4, 10), workers=0))


@pytest.mark.parametrize("workers", [1, 3])
def test_cancel_stops_at_band_boundary(workers):
    params = GenerationParams(10, 100, 10)
    cancel = threading.Event()
    events = []

    def on_band(pixels, band, progress):
        events.append(band.start_row)
        cancel.set()

    render_progressive(
        params,
        on_band,
        lambda: events.append("complete"),
        workers=workers,
        cancel=cancel,
    )
    assert events == [0]


def test_failure_halts_bands_and_skips_completion(monkeypatch):
    real_grid = renderer.escape_iterations_grid
    calls = []

    def flaky_grid(x0, y0, max_iterations):
        calls.append(1)
        if len(calls) > 1:
            raise FloatingPointError("simulated fault")
        return real_grid(x0, y0, max_iterations)

    monkeypatch.setattr(renderer, "escape_iterations_grid", flaky_grid)
    events = []

    with pytest.raises(InternalFailure) as excinfo:
        render_progressive(
            GenerationParams(6, 60, 10),
            lambda pixels, band, progress: events.append(band.start_row),
            lambda: events.append("complete"),
        )

    assert events == [0]
    assert isinstance(excinfo.value.__cause__, FloatingPointError)
    assert "rows 20-39" in str(excinfo.value)


@pytest.mark.parametrize(
    "params,kwargs",
    [
        (GenerationParams(4, 4, 0), {}),
        (GenerationParams(4, 4, 10), {"workers": 0}),
        (GenerationParams(4, 4, 10), {"band_rows": 0}),
        (GenerationParams(4, 4, 10), {"backend": "cuda"}),
    ],
)
def test_iter_bands_rejects_bad_arguments_at_call_time(params, kwargs):
    with pytest.raises(InvalidParameters):
        iter_bands(params, **kwargs)
