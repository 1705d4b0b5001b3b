"""
Wplace Dither — Studio

Run with:
    streamlit run streamlit_app.py

Query parameters (``?ratio=0.6&seed=7&disable=0,5``) preload the controls,
the same keys the "Share" box produces.
"""

from __future__ import annotations

import io
import time

import numpy as np
import streamlit as st
from PIL import Image, ImageDraw

from wplace_dither.config import AppConfig, DitherOptions
from wplace_dither.dithering import dither
from wplace_dither.errors import DitherError
from wplace_dither.image_io import (
    RESAMPLE_FILTERS,
    SCALE_RANGE,
    clamp_scale,
    compute_scaled_size,
)
from wplace_dither.mask import BRUSH_MODES, clear_mask, new_mask, stamp_brush
from wplace_dither.palette import PALETTES, get_palette, rgb_to_hex, select_palette
from wplace_dither.share import ShareSettings, make_share_url

# -- Page config -------------------------------------------------------
st.set_page_config(
    page_title="Wplace Dither",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded",
)

_APP = AppConfig()

# -- CSS ---------------------------------------------------------------
st.markdown("""
<style>
    .block-container {
        max-width: 1200px;
        padding-top: 2.5rem;
    }
    .swatch {
        display: inline-block;
        width: 1.1rem;
        height: 1.1rem;
        border: 1px solid #ccc;
        vertical-align: middle;
        margin-right: 0.3rem;
    }
    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


# -- Helpers -----------------------------------------------------------

def _initial_settings() -> ShareSettings:
    try:
        return ShareSettings.from_query(dict(st.query_params))
    except DitherError as exc:
        st.warning(f"Ignoring link settings: {exc}")
        return ShareSettings()


def _upscaled(arr: np.ndarray, factor: int) -> Image.Image:
    img = Image.fromarray(arr)
    h, w = arr.shape[:2]
    return img.resize((w * factor, h * factor), Image.Resampling.NEAREST)


def _mask_overlay(base: np.ndarray, mask: np.ndarray, factor: int) -> Image.Image:
    """Dithered result with frozen cells tinted red."""
    img = _upscaled(base, factor).convert("RGBA")
    tint = np.zeros(mask.shape + (4,), dtype=np.uint8)
    tint[mask] = (255, 0, 0, 128)
    overlay = Image.fromarray(tint).resize(img.size, Image.Resampling.NEAREST)
    out = Image.alpha_composite(img, overlay)
    ImageDraw.Draw(out).rectangle([0, 0, out.width - 1, out.height - 1], outline=(200, 200, 200))
    return out


if "settings" not in st.session_state:
    st.session_state.settings = _initial_settings()
settings: ShareSettings = st.session_state.settings
opts = settings.options

# -- Sidebar: options --------------------------------------------------
with st.sidebar:
    st.header("Source")
    scale = st.number_input(
        "Scale", *SCALE_RANGE, clamp_scale(settings.scale, _APP.scale), step=0.05,
    )
    interp_names = list(RESAMPLE_FILTERS)
    interpolation = st.selectbox(
        "Interpolation", interp_names,
        index=interp_names.index(settings.interpolation)
        if settings.interpolation in interp_names else 0,
    )

    st.header("Dithering")
    ratio = st.slider("Diffusion ratio", 0.0, 1.0, float(opts.ratio), 0.05)
    jitter = st.slider("Jitter", 0.0, 64.0, float(opts.jitter), 1.0)
    gamma = st.slider("Gamma", 0.2, 3.0, float(opts.gamma_input), 0.05)
    balance = st.slider("Channel balance", 0.0, 1.0, float(opts.channel_balance), 0.05)
    grey_penalty = st.slider("Grey penalty", 0.0, 2.0, float(opts.chroma_weight), 0.05)
    edge_falloff = st.slider("Edge falloff", 0.0, 50.0, float(opts.edge_falloff), 0.5)
    error_clip = st.slider("Error clip", 0.0, 255.0, float(opts.error_clip), 1.0)
    seed = st.number_input("Seed", 0, 2**32 - 1, int(opts.seed) % 2**32, step=1)
    upscale = st.slider("Preview upscale", 1, 16, _APP.pixel_upscale)

# -- Palette -----------------------------------------------------------
st.title("Wplace Dither")

preset = st.selectbox("Palette", list(PALETTES), index=list(PALETTES).index(_APP.palette))
full_palette = get_palette(preset)

with st.expander(f"Colours ({len(full_palette)})", expanded=False):
    initially_off = set(settings.disable)
    if settings.enable is not None:
        initially_off = set(range(len(full_palette))) - set(settings.enable)
    cols = st.columns(8)
    disabled: list[int] = []
    for i, rgb in enumerate(full_palette):
        hx = rgb_to_hex(rgb)
        with cols[i % 8]:
            on = st.checkbox(
                f"{i} {hx}", value=i not in initially_off, key=f"pal_{preset}_{i}",
            )
            st.markdown(f'<span class="swatch" style="background:{hx};"></span>',
                        unsafe_allow_html=True)
        if not on:
            disabled.append(i)

# -- Upload ------------------------------------------------------------
uploaded = st.file_uploader(
    "Select image", type=["jpg", "jpeg", "png", "webp", "bmp", "gif"],
)

# Persist upload in session state so control changes don't clear it
if uploaded is not None:
    if st.session_state.get("uploaded_data") != uploaded.getvalue():
        st.session_state.uploaded_data = uploaded.getvalue()
        st.session_state.uploaded_name = uploaded.name
        st.session_state.pop("result", None)
        st.session_state.pop("freeze_mask", None)
elif "uploaded_data" not in st.session_state:
    st.session_state.uploaded_data = None

if st.session_state.uploaded_data is None:
    st.info("Upload an image to begin.")
    st.stop()

original = Image.open(io.BytesIO(st.session_state.uploaded_data)).convert("RGBA")
w, h = compute_scaled_size(original.width, original.height, scale)
source = np.array(
    original.resize((w, h), RESAMPLE_FILTERS[interpolation]), dtype=np.uint8,
)

# Drop state that no longer fits the (re)scaled source
prior = st.session_state.get("result")
if prior is not None and prior.shape[:2] != (h, w):
    st.session_state.pop("result", None)
    st.session_state.pop("freeze_mask", None)
    prior = None
if "freeze_mask" not in st.session_state:
    st.session_state.freeze_mask = new_mask(h, w)

# -- Freeze mask brush -------------------------------------------------
with st.expander("Freeze mask", expanded=False):
    st.caption(
        "Frozen pixels keep the colour of the previous result when you "
        "dither again. Stamp circles in image pixel coordinates."
    )
    b1, b2, b3, b4 = st.columns(4)
    bx = b1.number_input("x", 0, max(w - 1, 0), w // 2)
    by = b2.number_input("y", 0, max(h - 1, 0), h // 2)
    radius = b3.number_input("Radius", 0, max(w, h), max(1, min(w, h) // 8))
    mode = b4.selectbox("Mode", BRUSH_MODES)
    s1, s2 = st.columns(2)
    if s1.button("Stamp", use_container_width=True, disabled=prior is None):
        st.session_state.freeze_mask = stamp_brush(
            st.session_state.freeze_mask, bx, by, int(radius), mode,
        )
    if s2.button("Clear mask", use_container_width=True):
        st.session_state.freeze_mask = clear_mask(st.session_state.freeze_mask)
    frozen_px = int(st.session_state.freeze_mask.sum())
    st.caption(f"{frozen_px:,} of {w * h:,} pixels frozen")
    if prior is not None and frozen_px:
        st.image(_mask_overlay(prior, st.session_state.freeze_mask, upscale))

# -- Dither ------------------------------------------------------------
try:
    options = DitherOptions(
        ratio=ratio,
        error_clip=error_clip,
        jitter=jitter,
        channel_balance=balance,
        gamma_input=gamma,
        seed=int(seed),
        chroma_weight=grey_penalty,
        edge_falloff=edge_falloff,
    )
    palette = select_palette(full_palette, disabled=disabled)
except DitherError as exc:
    st.error(str(exc))
    st.stop()

if st.button("DITHER", type="primary", use_container_width=True):
    t0 = time.perf_counter()
    with st.spinner("Dithering ..."):
        result = dither(
            source, palette,
            prior_result=prior,
            freeze_mask=st.session_state.freeze_mask if prior is not None else None,
            options=options,
        )
    st.session_state.result = result
    st.session_state.elapsed = time.perf_counter() - t0

result = st.session_state.get("result")
before_col, after_col = st.columns(2)
with before_col:
    st.image(_upscaled(source, upscale), caption=f"Before {w}x{h}")
if result is not None:
    with after_col:
        st.image(_upscaled(result, upscale), caption="After")

    buf = io.BytesIO()
    Image.fromarray(result).save(buf, format="PNG")
    m1, m2, m3 = st.columns(3)
    m1.metric("Resolution", f"{w} × {h}")
    m2.metric("Colours", f"{len(palette)}")
    m3.metric("Time", f"{st.session_state.get('elapsed', 0.0):.1f} s")
    st.download_button(
        "SAVE PNG",
        data=buf.getvalue(),
        file_name="dithered.png",
        mime="image/png",
        use_container_width=True,
    )

# -- Share -------------------------------------------------------------
share_settings = ShareSettings(
    options=options,
    scale=scale,
    interpolation=interpolation,
    src=settings.src,
    disable=tuple(disabled),
)
st.text_input("Share link", make_share_url("", share_settings))
