"""Tests for the wplace_dither package."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from typer.testing import CliRunner

from wplace_dither import dithering
from wplace_dither.cli import app
from wplace_dither.color_utils import (
    build_palette_meta,
    channel_weights,
    linearize,
    make_distance_function,
)
from wplace_dither.config import AppConfig, DitherOptions
from wplace_dither.dithering import (
    FS_KERNEL,
    diffuse_error,
    dither,
    edge_weights,
    lcg_next,
    seed_state,
    triangular_jitter,
)
from wplace_dither.errors import (
    DitherError,
    InvalidDimensions,
    InvalidPalette,
    InvalidParameter,
)
from wplace_dither.image_io import (
    SCALE_RANGE,
    as_rgba_grid,
    clamp_scale,
    compute_scaled_size,
    load_rgba,
    make_comparison_grid,
    save_rgba,
)
from wplace_dither.mask import (
    brush_footprint,
    clear_mask,
    load_mask,
    mask_from_image,
    new_mask,
    save_mask,
    stamp_brush,
)
from wplace_dither.palette import (
    PALETTES,
    get_palette,
    load_palette_file,
    parse_hex_palette,
    parse_index_list,
    resolve_palette,
    select_palette,
)
from wplace_dither.share import ShareSettings, make_share_url

# -- Fixtures ----------------------------------------------------------

W, H = 12, 9  # non-square to catch x/y mix-ups
BW = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)


@pytest.fixture
def palette() -> np.ndarray:
    return get_palette("wplace")


@pytest.fixture
def image() -> np.ndarray:
    """Random RGBA image with a mix of opaque, partial and clear pixels."""
    rng = np.random.default_rng(456)
    img = rng.integers(0, 256, size=(H, W, 4), dtype=np.uint8)
    img[..., 3] = rng.choice([0, 90, 255, 255], size=(H, W)).astype(np.uint8)
    return img


@pytest.fixture
def gradient() -> np.ndarray:
    """Opaque horizontal grey ramp."""
    ramp = np.linspace(0, 255, W).round().astype(np.uint8)
    img = np.zeros((H, W, 4), dtype=np.uint8)
    img[..., :3] = ramp[np.newaxis, :, np.newaxis]
    img[..., 3] = 255
    return img


@pytest.fixture
def tmp_image(tmp_path: Path) -> Path:
    """Write a small non-square test PNG to disk."""
    rng = np.random.default_rng(7)
    img = Image.fromarray(rng.integers(0, 256, (16, 20, 3), dtype=np.uint8))
    p = tmp_path / "test.png"
    img.save(p)
    return p


def _opaque(rgb: list[int]) -> np.ndarray:
    return np.array([[rgb + [255]]], dtype=np.uint8)


@pytest.fixture
def diffusion_calls(monkeypatch: pytest.MonkeyPatch) -> dict:
    """Record the error and coefficient the engine diffuses from each pixel."""
    calls: dict = {}
    original = dithering.diffuse_error

    def spy(accumulator, x, y, quant_error, coefficient):
        calls[(x, y)] = (np.array(quant_error, dtype=np.float64), coefficient)
        original(accumulator, x, y, quant_error, coefficient)

    monkeypatch.setattr(dithering, "diffuse_error", spy)
    return calls


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        opts = DitherOptions()
        assert opts.ratio == 0.8
        assert opts.error_clip == 255
        assert opts.jitter == 8
        assert opts.channel_balance == 0.75
        assert opts.gamma_input == 1.2
        assert opts.seed == 42
        assert opts.chroma_weight == 0.3
        assert opts.edge_falloff == 0.5

    def test_frozen(self) -> None:
        opts = DitherOptions()
        with pytest.raises(AttributeError):
            opts.ratio = 0.5  # type: ignore[misc]

    @pytest.mark.parametrize("field,value", [
        ("gamma_input", 0.0),
        ("gamma_input", -1.0),
        ("ratio", 1.5),
        ("ratio", -0.1),
        ("jitter", -2.0),
        ("error_clip", -1.0),
        ("edge_falloff", float("nan")),
        ("chroma_weight", float("inf")),
    ])
    def test_rejects_out_of_range(self, field: str, value: float) -> None:
        with pytest.raises(InvalidParameter):
            DitherOptions(**{field: value})

    def test_seed_must_be_integer(self) -> None:
        with pytest.raises(InvalidParameter):
            DitherOptions(seed=1.5)  # type: ignore[arg-type]

    def test_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            DitherOptions(gamma_input=0)

    def test_with_overrides(self) -> None:
        opts = DitherOptions().with_overrides(ratio=0.5, seed=7)
        assert opts.ratio == 0.5
        assert opts.seed == 7
        with pytest.raises(InvalidParameter):
            DitherOptions().with_overrides(bogus=1)

    def test_app_config_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.palette in PALETTES
        assert ".png" in cfg.SUPPORTED_EXTENSIONS


# -- Palette metadata & distance ---------------------------------------

class TestDistanceFunction:
    def test_linearize(self) -> None:
        lin = linearize([0, 255, 128], 1.2)
        assert lin[0] == 0.0
        assert lin[1] == 1.0
        assert lin[2] == pytest.approx((128 / 255) ** 1.2)

    def test_weights(self) -> None:
        np.testing.assert_allclose(channel_weights(0.0), [1.0, 1.0, 1.0])
        np.testing.assert_allclose(channel_weights(1.0), [0.3, 0.59, 0.11])

    def test_meta_flags(self) -> None:
        meta = build_palette_meta(
            [[0, 0, 0], [255, 255, 255], [128, 128, 128], [255, 0, 0]], 1.2,
        )
        assert [m.is_mid_grey for m in meta] == [False, False, True, False]
        assert meta[3].chroma == pytest.approx(1.0)
        assert meta[1].lightness == pytest.approx(1.0)

    def test_empty_palette(self) -> None:
        with pytest.raises(InvalidPalette):
            make_distance_function([])

    @pytest.mark.parametrize("gamma", [0, -1.0, float("nan"), float("inf")])
    def test_bad_gamma(self, gamma: float) -> None:
        with pytest.raises(InvalidParameter):
            make_distance_function(BW, gamma=gamma)

    @pytest.mark.parametrize("kwargs", [
        {"channel_balance": float("nan")},
        {"chroma_weight": float("nan")},
        {"chroma_weight": -0.1},
    ])
    def test_bad_weights(self, kwargs: dict) -> None:
        with pytest.raises(InvalidParameter):
            make_distance_function(BW, **kwargs)

    def test_lookup_tables_read_only(self) -> None:
        distance = make_distance_function(BW)
        for arr in (distance.weights, distance._linear, distance._grey_mask):
            with pytest.raises(ValueError):
                arr[0] = 0
        assert distance([255, 255, 255]) == 1

    def test_exact_match(self, palette: np.ndarray) -> None:
        distance = make_distance_function(palette)
        for i in (0, 10, 40, len(palette) - 1):
            assert distance(palette[i]) == i

    def test_tie_goes_to_lowest_index(self) -> None:
        distance = make_distance_function([[10, 10, 10], [10, 10, 10], [200, 0, 0]])
        assert distance([10, 10, 10]) == 0

    def test_mid_grey_resolves_to_black(self) -> None:
        # (128/255)^1.2 ~ 0.437 is nearer 0 than 1 in linear space
        distance = make_distance_function(BW)
        assert distance([128, 128, 128, 255]) == 0

    def test_grey_penalty(self) -> None:
        pal = [[128, 128, 128], [255, 0, 0]]
        colour = [150, 100, 100]
        assert make_distance_function(pal, chroma_weight=0.0)(colour) == 0
        assert make_distance_function(pal, chroma_weight=0.3)(colour) == 0
        assert make_distance_function(pal, chroma_weight=1.0)(colour) == 1

    def test_no_penalty_for_neutral_input(self) -> None:
        pal = [[128, 128, 128], [255, 0, 0]]
        distance = make_distance_function(pal, chroma_weight=100.0)
        assert distance([120, 120, 120]) == 0


# -- PRNG --------------------------------------------------------------

class TestPrng:
    def test_lcg_step(self) -> None:
        state, value = lcg_next(seed_state(42))
        assert state == 1083814273
        assert value == 1083814273 / 2**32

    def test_seed_wraps_to_uint32(self) -> None:
        assert seed_state(-1) == 2**32 - 1
        assert seed_state(2**32 + 5) == 5

    def test_jitter_bounds(self) -> None:
        state = seed_state(1)
        for _ in range(500):
            state, value = triangular_jitter(state, 8.0)
            assert -8.0 <= value <= 8.0

    def test_zero_amplitude(self) -> None:
        _, value = triangular_jitter(seed_state(3), 0.0)
        assert value == 0


# -- Edge weighting & diffusion ----------------------------------------

class TestDiffusion:
    def test_kernel_sums_to_one(self) -> None:
        assert sum(wt for _, _, wt in FS_KERNEL) == pytest.approx(1.0)

    def test_flat_image_has_unit_weights(self) -> None:
        img = np.full((4, 5, 4), 77, dtype=np.uint8)
        np.testing.assert_array_equal(edge_weights(img, 10.0), np.ones((4, 5)))

    def test_hard_edge_suppresses_diffusion(self) -> None:
        img = np.array([[[0, 0, 0, 255], [255, 255, 255, 255]]], dtype=np.uint8)
        edges = edge_weights(img, 50.0)
        assert edges[0, 0] == 1.0
        # energy = 3 * 255^2 / (6 * 255^2) = 0.5
        assert edges[0, 1] == pytest.approx(np.exp(-25.0))

        acc = np.zeros((2, 3, 4), dtype=np.float32)
        diffuse_error(acc, 1, 0, np.array([255.0, 255.0, 255.0]), 0.8 * edges[0, 1])
        assert np.abs(acc).max() < 1e-6

    def test_error_bound(self) -> None:
        acc = np.zeros((3, 3, 4), dtype=np.float32)
        err = np.clip(np.array([400.0, -400.0, 100.0]), -255, 255)
        diffuse_error(acc, 1, 1, err, 0.8)
        assert np.abs(acc).max() <= 255 * 0.8 * 7 / 16 + 1e-3
        assert acc[1, 2, 0] == pytest.approx(255 * 7 / 16 * 0.8, rel=1e-6)
        assert acc[2, 0, 1] == pytest.approx(-255 * 3 / 16 * 0.8, rel=1e-6)
        np.testing.assert_array_equal(acc[..., 3], 0)

    def test_top_left_corner_does_not_wrap(self) -> None:
        acc = np.zeros((2, 2, 4), dtype=np.float32)
        diffuse_error(acc, 0, 0, np.array([16.0, 16.0, 16.0]), 1.0)
        np.testing.assert_allclose(acc[0, 1, :3], 7.0)
        np.testing.assert_allclose(acc[1, 0, :3], 5.0)
        np.testing.assert_allclose(acc[1, 1, :3], 1.0)
        np.testing.assert_array_equal(acc[0, 0], 0)

    def test_bottom_right_corner_is_noop(self) -> None:
        acc = np.zeros((2, 2, 4), dtype=np.float32)
        diffuse_error(acc, 1, 1, np.array([100.0, 100.0, 100.0]), 1.0)
        np.testing.assert_array_equal(acc, 0)


# -- Engine ------------------------------------------------------------

class TestDither:
    def test_output_shape(self, image: np.ndarray, palette: np.ndarray) -> None:
        out = dither(image, palette)
        assert out.shape == (H, W, 4)
        assert out.dtype == np.uint8

    def test_deterministic(self, image: np.ndarray, palette: np.ndarray) -> None:
        a = dither(image, palette)
        b = dither(image.copy(), palette.copy())
        np.testing.assert_array_equal(a, b)

    def test_seed_changes_output(self, gradient: np.ndarray) -> None:
        pal = get_palette("grayscale")
        a = dither(gradient, pal, options=DitherOptions(seed=1, jitter=32))
        b = dither(gradient, pal, options=DitherOptions(seed=2, jitter=32))
        assert not np.array_equal(a, b)

    def test_palette_membership(self, image: np.ndarray, palette: np.ndarray) -> None:
        out = dither(image, palette)
        visible = image[..., 3] > 0
        palette_set = {tuple(c) for c in palette}
        assert {tuple(c) for c in out[visible][:, :3]}.issubset(palette_set)

    def test_alpha_preserved(self, image: np.ndarray, palette: np.ndarray) -> None:
        out = dither(image, palette)
        np.testing.assert_array_equal(out[..., 3], image[..., 3])

    def test_transparent_pixel_is_cleared(self) -> None:
        out = dither(np.array([[[10, 20, 30, 0]]], dtype=np.uint8), BW)
        np.testing.assert_array_equal(out[0, 0], [0, 0, 0, 0])

    def test_transparent_pixel_diffuses_nothing(
        self, image: np.ndarray, palette: np.ndarray,
    ) -> None:
        opaque = image.copy()
        opaque[..., 3] = 255
        opaque[4, 5] = [255, 0, 255, 0]
        other = opaque.copy()
        other[4, 5] = [0, 255, 0, 0]
        # edge_falloff=0 so the hidden RGB does not shift neighbour edge weights
        opts = DitherOptions(edge_falloff=0.0)
        np.testing.assert_array_equal(
            dither(opaque, palette, options=opts),
            dither(other, palette, options=opts),
        )

    def test_no_diffusion_single_pixel(self) -> None:
        opts = DitherOptions(ratio=0.0, jitter=0.0)
        out = dither(_opaque([128, 128, 128]), BW, options=opts)
        np.testing.assert_array_equal(out[0, 0], [0, 0, 0, 255])

    def test_diffusion_spreads_tone(self) -> None:
        img = np.full((8, 8, 4), 128, dtype=np.uint8)
        img[..., 3] = 255
        opts = DitherOptions(jitter=0.0, ratio=1.0)
        out = dither(img, BW, options=opts)
        whites = int((out[..., 0] == 255).sum())
        assert 0 < whites < 64

        flat = dither(img, BW, options=opts.with_overrides(ratio=0.0))
        assert int((flat[..., 0] == 255).sum()) == 0

    def test_freeze_single_pixel(self) -> None:
        out = dither(
            _opaque([100, 100, 100]),
            BW,
            prior_result=np.array([[[50, 60, 70, 255]]], dtype=np.uint8),
            freeze_mask=np.array([[True]]),
        )
        np.testing.assert_array_equal(out[0, 0], [50, 60, 70, 255])

    def test_freeze_keeps_current_alpha(self) -> None:
        img = np.array([[[100, 100, 100, 128]]], dtype=np.uint8)
        out = dither(
            img, BW,
            prior_result=np.array([[[50, 60, 70, 255]]], dtype=np.uint8),
            freeze_mask=np.array([[True]]),
        )
        np.testing.assert_array_equal(out[0, 0], [50, 60, 70, 128])

    def test_freeze_fidelity(self, image: np.ndarray, palette: np.ndarray) -> None:
        rng = np.random.default_rng(9)
        mask = rng.random((H, W)) < 0.4
        prior = dither(image, palette, options=DitherOptions(seed=3))
        out = dither(image, palette, prior_result=prior, freeze_mask=mask)

        frozen = mask & (image[..., 3] > 0)
        np.testing.assert_array_equal(out[frozen][:, :3], prior[frozen][:, :3])
        np.testing.assert_array_equal(out[..., 3], image[..., 3])

    def test_mask_without_prior_is_ignored(
        self, image: np.ndarray, palette: np.ndarray,
    ) -> None:
        mask = np.ones((H, W), dtype=bool)
        np.testing.assert_array_equal(
            dither(image, palette, freeze_mask=mask), dither(image, palette),
        )

    def test_rgb_input_treated_as_opaque(self, palette: np.ndarray) -> None:
        rgb = np.full((3, 4, 3), 200, dtype=np.uint8)
        out = dither(rgb, palette)
        assert out.shape == (3, 4, 4)
        assert (out[..., 3] == 255).all()

    @pytest.mark.parametrize("shape", [(1, 1), (1, 7), (7, 1), (2, 2)])
    def test_thin_images(self, shape: tuple[int, int], palette: np.ndarray) -> None:
        rng = np.random.default_rng(0)
        img = rng.integers(0, 256, size=shape + (4,), dtype=np.uint8)
        img[..., 3] = 255
        assert dither(img, palette).shape == shape + (4,)

    def test_empty_palette(self, image: np.ndarray) -> None:
        with pytest.raises(InvalidPalette):
            dither(image, np.empty((0, 3), dtype=np.uint8))

    def test_mask_dimension_mismatch(
        self, image: np.ndarray, palette: np.ndarray,
    ) -> None:
        with pytest.raises(InvalidDimensions):
            dither(image, palette, freeze_mask=np.zeros((H + 1, W), dtype=bool))

    def test_prior_dimension_mismatch(
        self, image: np.ndarray, palette: np.ndarray,
    ) -> None:
        with pytest.raises(InvalidDimensions):
            dither(image, palette, prior_result=np.zeros((H, W - 1, 4), dtype=np.uint8))

    def test_image_must_be_rgba_grid(self, palette: np.ndarray) -> None:
        with pytest.raises(DitherError):
            dither(np.zeros((4, 4), dtype=np.uint8), palette)


class TestEngineDiffusion:
    def test_flat_opaque_image_diffuses_at_ratio(self, diffusion_calls: dict) -> None:
        img = np.full((2, 3, 4), 100, dtype=np.uint8)
        img[..., 3] = 255
        dither(img, BW, options=DitherOptions(jitter=0))
        assert len(diffusion_calls) == 6
        for _, coefficient in diffusion_calls.values():
            assert coefficient == pytest.approx(0.8)

    def test_frozen_pixel_diffuses_at_half_strength(self, diffusion_calls: dict) -> None:
        img = np.array([[[100, 100, 100, 255], [100, 100, 100, 255]]], dtype=np.uint8)
        prior = np.array([[[0, 0, 0, 255], [255, 255, 255, 255]]], dtype=np.uint8)
        dither(
            img, BW,
            prior_result=prior,
            freeze_mask=np.array([[True, False]]),
            options=DitherOptions(jitter=0),
        )
        err, coefficient = diffusion_calls[(0, 0)]
        assert coefficient == pytest.approx(0.4)
        np.testing.assert_allclose(err, [100.0, 100.0, 100.0])
        assert diffusion_calls[(1, 0)][1] == pytest.approx(0.8)

    def test_partial_alpha_scales_coefficient(self, diffusion_calls: dict) -> None:
        img = np.array(
            [[[0, 0, 0, 0], [100, 100, 100, 90], [100, 100, 100, 255]]], dtype=np.uint8,
        )
        dither(img, BW, options=DitherOptions(jitter=0, edge_falloff=0.0))
        assert (0, 0) not in diffusion_calls
        assert diffusion_calls[(1, 0)][1] == pytest.approx(0.8 * 90 / 255)
        assert diffusion_calls[(2, 0)][1] == pytest.approx(0.8)

    def test_error_clipped_before_diffusion(
        self, gradient: np.ndarray, diffusion_calls: dict,
    ) -> None:
        dither(gradient, BW, options=DitherOptions(error_clip=10.0, jitter=0))
        errors = np.array([err for err, _ in diffusion_calls.values()])
        assert np.abs(errors).max() == pytest.approx(10.0)

    def test_hard_edge_damps_coefficient(self, diffusion_calls: dict) -> None:
        img = np.array([[[0, 0, 0, 255], [255, 255, 255, 255]]], dtype=np.uint8)
        out = dither(img, BW, options=DitherOptions(jitter=0, edge_falloff=50.0))
        np.testing.assert_array_equal(out[0, :, :3], [[0, 0, 0], [255, 255, 255]])
        assert diffusion_calls[(0, 0)][1] == pytest.approx(0.8)
        assert diffusion_calls[(1, 0)][1] == pytest.approx(0.8 * np.exp(-25.0), rel=1e-9)


# -- Palette presets & selection ---------------------------------------

class TestPalette:
    def test_presets(self) -> None:
        for name in PALETTES:
            p = get_palette(name)
            assert p.dtype == np.uint8
            assert p.shape[1] == 3
        assert get_palette("wplace").shape == (63, 3)

    def test_unknown_preset(self) -> None:
        with pytest.raises(InvalidPalette):
            get_palette("nope")

    def test_parse_hex(self) -> None:
        p = parse_hex_palette("#ff0000, 00ff00,#00f")
        np.testing.assert_array_equal(p, [[255, 0, 0], [0, 255, 0], [0, 0, 255]])

    @pytest.mark.parametrize("spec", ["", "#12345", "#gg0000"])
    def test_bad_hex(self, spec: str) -> None:
        with pytest.raises(InvalidPalette):
            parse_hex_palette(spec)

    def test_palette_file(self, tmp_path: Path) -> None:
        p = tmp_path / "pal.txt"
        p.write_text("# my palette\n#000000\n\n#ffffff // white\n", encoding="utf-8")
        np.testing.assert_array_equal(load_palette_file(p), BW)
        np.testing.assert_array_equal(resolve_palette(str(p)), BW)

    def test_resolve_inline(self) -> None:
        np.testing.assert_array_equal(resolve_palette("#000,#fff"), BW)
        assert resolve_palette("BW").shape == (2, 3)

    def test_index_list(self) -> None:
        assert parse_index_list("0, x,5 ,12") == [0, 5, 12]
        assert parse_index_list(None) == []

    def test_index_list_takes_leading_integer(self) -> None:
        assert parse_index_list("5.5,3px, -2,px3") == [5, 3, -2]

    def test_disable(self) -> None:
        pal = get_palette("rgb")
        sel = select_palette(pal, disabled=[0, 7, 99])
        np.testing.assert_array_equal(sel, pal[1:7])

    def test_enable_overrides_disable(self) -> None:
        pal = get_palette("rgb")
        sel = select_palette(pal, disabled=[1], enabled=[1, 3])
        np.testing.assert_array_equal(sel, pal[[1, 3]])

    def test_all_disabled(self) -> None:
        with pytest.raises(InvalidPalette):
            select_palette(BW, disabled=[0, 1])


# -- Freeze mask brush -------------------------------------------------

class TestMask:
    def test_radius_zero_floors_coordinates(self) -> None:
        mask = stamp_brush(new_mask(4, 5), 2.7, 1.2, 0)
        assert mask.sum() == 1
        assert mask[1, 2]

    def test_circle(self) -> None:
        fp = brush_footprint((5, 5), 2, 2, 1)
        expected = np.zeros((5, 5), dtype=bool)
        expected[[1, 2, 2, 2, 3], [2, 1, 2, 3, 2]] = True
        np.testing.assert_array_equal(fp, expected)
        assert brush_footprint((9, 9), 4, 4, 2).sum() == 13

    def test_clipped_at_corner(self) -> None:
        assert brush_footprint((5, 5), 0, 0, 1).sum() == 3

    def test_subtract(self) -> None:
        mask = np.ones((5, 5), dtype=bool)
        out = stamp_brush(mask, 2, 2, 1, mode="subtract")
        assert out.sum() == 20
        assert mask.all()  # input untouched

    def test_bad_mode(self) -> None:
        with pytest.raises(InvalidParameter):
            stamp_brush(new_mask(2, 2), 0, 0, 1, mode="paint")

    def test_clear(self) -> None:
        mask = stamp_brush(new_mask(4, 4), 1, 1, 1)
        cleared = clear_mask(mask)
        assert cleared.shape == (4, 4)
        assert not cleared.any()
        assert mask.any()

    def test_mask_from_rgba(self) -> None:
        arr = np.zeros((2, 3, 4), dtype=np.uint8)
        arr[0, 1, 3] = 200
        mask = mask_from_image(Image.fromarray(arr))
        assert mask.sum() == 1
        assert mask[0, 1]

    def test_save_and_load(self, tmp_path: Path) -> None:
        mask = stamp_brush(new_mask(6, 8), 3, 3, 2)
        path = tmp_path / "mask.png"
        save_mask(mask, path)
        np.testing.assert_array_equal(load_mask(path, (6, 8)), mask)
        with pytest.raises(InvalidDimensions):
            load_mask(path, (8, 6))


# -- Share links -------------------------------------------------------

class TestShare:
    def test_lowercase_keys(self) -> None:
        query = ShareSettings(src="https://x.test/a.png", disable=(0, 5)).to_query()
        assert "greypenalty=0.3" in query
        assert "edgefalloff=0.5" in query
        assert "disable=0%2C5" in query
        assert "enable" not in query

    def test_round_trip(self) -> None:
        settings = ShareSettings(
            options=DitherOptions(ratio=0.55, jitter=3.25, seed=99, gamma_input=1.0),
            scale=0.5,
            interpolation="bilinear",
            src="cat.png",
            disable=(1, 2),
        )
        assert ShareSettings.from_query(settings.to_query()) == settings

    def test_case_insensitive(self) -> None:
        s = ShareSettings.from_query("?GreyPenalty=0.9&EdgeFalloff=2&SEED=5")
        assert s.options.chroma_weight == 0.9
        assert s.options.edge_falloff == 2.0
        assert s.options.seed == 5

    def test_unparsable_values_ignored(self) -> None:
        s = ShareSettings.from_query("ratio=abc&disable=1,x,3")
        assert s.options.ratio == DitherOptions().ratio
        assert s.disable == (1, 3)

    def test_full_url(self) -> None:
        s = ShareSettings.from_query("https://example.com/app?jitter=4&enable=0,2")
        assert s.options.jitter == 4.0
        assert s.enable == (0, 2)

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(InvalidParameter):
            ShareSettings.from_query("gamma=0")

    @pytest.mark.parametrize("raw", ["0", "-1", "inf", "nan"])
    def test_unusable_scale_dropped(self, raw: str) -> None:
        s = ShareSettings.from_query(f"scale={raw}&ratio=0.5")
        assert s.scale is None
        assert s.options.ratio == 0.5

    def test_large_scale_fits_app_range(self) -> None:
        s = ShareSettings.from_query("scale=8")
        assert s.scale == 8.0
        assert clamp_scale(s.scale) == SCALE_RANGE[1]

    def test_make_share_url(self) -> None:
        url = make_share_url("https://example.com/app?old=1", ShareSettings())
        assert url.startswith("https://example.com/app?")
        assert "old=1" not in url
        assert "ratio=0.8" in url


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_flat_buffer(self) -> None:
        data = bytes(range(24))
        grid = as_rgba_grid(data, 3, 2)
        assert grid.shape == (2, 3, 4)
        assert grid[1, 0, 0] == 12

    def test_flat_buffer_wrong_size(self) -> None:
        with pytest.raises(InvalidDimensions):
            as_rgba_grid(bytes(10), 3, 2)

    def test_scaled_size(self) -> None:
        assert compute_scaled_size(20, 16, 0.5) == (10, 8)
        assert compute_scaled_size(3, 1, 0.1) == (1, 1)

    @pytest.mark.parametrize("scale", [0, -0.5, float("nan"), float("inf")])
    def test_scaled_size_rejects_bad_scale(self, scale: float) -> None:
        with pytest.raises(InvalidParameter):
            compute_scaled_size(10, 10, scale)

    def test_clamp_scale(self) -> None:
        assert clamp_scale(0.001) == SCALE_RANGE[0]
        assert clamp_scale(2.5) == 2.5
        assert clamp_scale(None, 0.5) == 0.5
        assert clamp_scale(float("nan"), 0.75) == 0.75

    def test_load_rgba(self, tmp_image: Path) -> None:
        arr = load_rgba(tmp_image)
        assert arr.shape == (16, 20, 4)
        assert (arr[..., 3] == 255).all()

    def test_load_scaled(self, tmp_image: Path) -> None:
        arr = load_rgba(tmp_image, scale=0.5, interpolation="bilinear")
        assert arr.shape == (8, 10, 4)

    def test_bad_interpolation(self, tmp_image: Path) -> None:
        with pytest.raises(InvalidParameter):
            load_rgba(tmp_image, interpolation="sinc")

    def test_save_round_trip(self, tmp_path: Path, image: np.ndarray) -> None:
        path = tmp_path / "out.png"
        save_rgba(image, path)
        np.testing.assert_array_equal(load_rgba(path), image)

    def test_comparison_grid(self, tmp_path: Path, image: np.ndarray) -> None:
        path = tmp_path / "cmp.png"
        make_comparison_grid(image, image, path, pixel_upscale=2)
        assert path.exists()
        assert Image.open(path).size[0] == 2 * W * 2 + 8


# -- CLI ---------------------------------------------------------------

class TestCli:
    runner = CliRunner()

    def test_dither_command(self, tmp_image: Path, tmp_path: Path) -> None:
        out = tmp_path / "result.png"
        result = self.runner.invoke(
            app, ["dither", str(tmp_image), "-o", str(out), "-p", "bw", "--seed", "3"],
        )
        assert result.exit_code == 0, result.output
        arr = np.array(Image.open(out))
        assert {tuple(c) for c in arr[..., :3].reshape(-1, 3)} <= {
            (0, 0, 0), (255, 255, 255),
        }

    def test_freeze_via_cli(self, tmp_image: Path, tmp_path: Path) -> None:
        first = tmp_path / "first.png"
        second = tmp_path / "second.png"
        mask_path = tmp_path / "mask.png"
        self.runner.invoke(app, ["dither", str(tmp_image), "-o", str(first), "-p", "rgb"])
        mask = stamp_brush(new_mask(16, 20), 10, 8, 4)
        save_mask(mask, mask_path)

        result = self.runner.invoke(app, [
            "dither", str(tmp_image), "-o", str(second), "-p", "bw",
            "--freeze-mask", str(mask_path), "--prior", str(first),
        ])
        assert result.exit_code == 0, result.output
        a = np.array(Image.open(first))
        b = np.array(Image.open(second))
        np.testing.assert_array_equal(b[mask], a[mask])

    def test_invalid_option_exits_nonzero(self, tmp_image: Path, tmp_path: Path) -> None:
        result = self.runner.invoke(
            app, ["dither", str(tmp_image), "-o", str(tmp_path / "x.png"), "--gamma", "0"],
        )
        assert result.exit_code == 1
        assert "gamma_input" in result.output

    def test_share_command(self) -> None:
        result = self.runner.invoke(
            app, ["share", "https://example.com/", "--seed", "7", "--disable", "1,2"],
        )
        assert result.exit_code == 0, result.output
        assert "seed=7" in result.output
        assert "disable=1%2C2" in result.output

    def test_replay_command(self, tmp_image: Path, tmp_path: Path) -> None:
        out = tmp_path / "replay.png"
        link = f"https://example.com/?seed=5&src={tmp_image}"
        result = self.runner.invoke(app, ["replay", link, "-o", str(out), "-p", "bw"])
        assert result.exit_code == 0, result.output
        expected = dither(load_rgba(tmp_image), BW, options=DitherOptions(seed=5))
        np.testing.assert_array_equal(np.array(Image.open(out)), expected)

    def test_palettes_command(self) -> None:
        result = self.runner.invoke(app, ["palettes"])
        assert result.exit_code == 0
        assert "wplace" in result.output
        result = self.runner.invoke(app, ["palettes", "bw"])
        assert "#ffffff" in result.output
