"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import typer
from PIL import UnidentifiedImageError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from wplace_dither.config import AppConfig, DitherOptions
from wplace_dither.dithering import dither as run_dither
from wplace_dither.errors import DitherError
from wplace_dither.image_io import (
    load_rgba,
    make_comparison_grid,
    save_rgba,
    save_upscaled,
)
from wplace_dither.mask import load_mask
from wplace_dither.palette import (
    PALETTES,
    get_palette,
    parse_index_list,
    resolve_palette,
    rgb_to_hex,
    select_palette,
)
from wplace_dither.share import ShareSettings, make_share_url

app = typer.Typer(
    name="wplace-dither",
    help="Dither images to a fixed palette with edge-aware Floyd-Steinberg.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def _fail(message: str) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {message}")
    return typer.Exit(1)


def _active_palette(spec: str, disable: str | None, enable: str | None) -> np.ndarray:
    palette = resolve_palette(spec)
    return select_palette(
        palette,
        disabled=parse_index_list(disable),
        enabled=parse_index_list(enable) if enable else None,
    )


def _mean_error(source: np.ndarray, result: np.ndarray) -> float:
    """Mean RGB distance over visible pixels."""
    visible = source[..., 3] > 0
    if not visible.any():
        return 0.0
    s = source[visible][:, :3].astype(np.float64)
    r = result[visible][:, :3].astype(np.float64)
    return float(np.mean(np.sqrt(np.sum((s - r) ** 2, axis=1))))


# Defaults come from the config dataclasses - single source of truth
_DEFAULTS = DitherOptions()
_APP = AppConfig()


# -- dither command ----------------------------------------------------

@app.command()
def dither(
    target: Path = typer.Argument(..., help="Image to dither"),
    output: Path = typer.Option(Path("output/dithered.png"), "--output", "-o"),
    palette: str = typer.Option(
        _APP.palette, "--palette", "-p",
        help="Preset name, palette file, or comma-separated hex colours",
    ),
    disable: str | None = typer.Option(
        None, "--disable", help="Palette indices to skip, e.g. '0,5,12'",
    ),
    enable: str | None = typer.Option(
        None, "--enable", help="Only these palette indices (overrides --disable)",
    ),
    scale: float = typer.Option(_APP.scale, "--scale", help="Resize factor before dithering"),
    interpolation: str = typer.Option(
        _APP.interpolation, "--interpolation",
        help="nearest | box | bilinear | bicubic | lanczos",
    ),
    ratio: float = typer.Option(_DEFAULTS.ratio, "--ratio", help="Diffusion strength"),
    error_clip: float = typer.Option(_DEFAULTS.error_clip, "--error-clip"),
    jitter: float = typer.Option(_DEFAULTS.jitter, "--jitter", help="Noise amplitude"),
    balance: float = typer.Option(_DEFAULTS.channel_balance, "--balance"),
    gamma: float = typer.Option(_DEFAULTS.gamma_input, "--gamma"),
    seed: int = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    grey_penalty: float = typer.Option(_DEFAULTS.chroma_weight, "--grey-penalty"),
    edge_falloff: float = typer.Option(_DEFAULTS.edge_falloff, "--edge-falloff"),
    freeze_mask: Path | None = typer.Option(
        None, "--freeze-mask", help="Mask image; painted pixels keep --prior colours",
    ),
    prior: Path | None = typer.Option(
        None, "--prior", help="Earlier dithered result reused under the mask",
    ),
    upscale: int = typer.Option(_APP.pixel_upscale, "--upscale", "-u"),
    preview: bool = typer.Option(_APP.save_preview, "--preview/--no-preview"),
    comparison: bool = typer.Option(_APP.save_comparison, "--comparison/--no-comparison"),
    share_base: str | None = typer.Option(
        None, "--share-base", help="Print a share link rooted at this URL",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Dither a single image."""
    _setup_logging(verbose)

    try:
        options = DitherOptions(
            ratio=ratio,
            error_clip=error_clip,
            jitter=jitter,
            channel_balance=balance,
            gamma_input=gamma,
            seed=seed,
            chroma_weight=grey_penalty,
            edge_falloff=edge_falloff,
        )
        pal = _active_palette(palette, disable, enable)
        img = load_rgba(target, scale, interpolation)
        h, w = img.shape[:2]

        mask = load_mask(freeze_mask, (h, w)) if freeze_mask else None
        prior_img = load_rgba(prior) if prior else None
        if mask is not None and prior_img is None:
            console.print("[yellow]--freeze-mask given without --prior; ignoring it[/yellow]")

        t0 = time.perf_counter()
        result = run_dither(img, pal, prior_img, mask, options)
        elapsed = time.perf_counter() - t0
    except DitherError as exc:
        raise _fail(str(exc)) from exc
    except (OSError, UnidentifiedImageError) as exc:
        raise _fail(f"Could not read image: {exc}") from exc

    output.parent.mkdir(parents=True, exist_ok=True)
    save_rgba(result, output)
    if preview:
        save_upscaled(result, output.with_name(f"{output.stem}_preview.png"), upscale)
    if comparison:
        make_comparison_grid(
            img, result, output.with_name(f"{output.stem}_comparison.png"), upscale,
        )

    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{w}x{h}  colours={len(pal)}  error={_mean_error(img, result):.1f}"
        f"  time={elapsed:.1f}s[/dim]"
    )

    if share_base:
        settings = ShareSettings(
            options=options,
            scale=scale,
            interpolation=interpolation,
            src=str(target),
            disable=tuple(parse_index_list(disable)),
            enable=tuple(parse_index_list(enable)) if enable else None,
        )
        console.print(make_share_url(share_base, settings), soft_wrap=True)


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(
        _APP.input_dir, "--input", "-i", help="Folder with source images",
    ),
    output_dir: Path = typer.Option(
        _APP.output_dir, "--output", "-o", help="Results folder",
    ),
    palette: str = typer.Option(_APP.palette, "--palette", "-p"),
    disable: str | None = typer.Option(None, "--disable"),
    enable: str | None = typer.Option(None, "--enable"),
    scale: float = typer.Option(_APP.scale, "--scale"),
    interpolation: str = typer.Option(_APP.interpolation, "--interpolation"),
    ratio: float = typer.Option(_DEFAULTS.ratio, "--ratio"),
    jitter: float = typer.Option(_DEFAULTS.jitter, "--jitter"),
    seed: int = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    edge_falloff: float = typer.Option(_DEFAULTS.edge_falloff, "--edge-falloff"),
    upscale: int = typer.Option(_APP.pixel_upscale, "--upscale", "-u"),
    comparison: bool = typer.Option(True, "--comparison/--no-comparison"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Dither every image in INPUT_DIR and write results to OUTPUT_DIR."""
    _setup_logging(verbose)
    logger = logging.getLogger("wplace_dither")

    cfg = AppConfig(
        palette=palette,
        scale=scale,
        interpolation=interpolation,
        pixel_upscale=upscale,
        save_comparison=comparison,
        input_dir=input_dir,
        output_dir=output_dir,
    )

    try:
        options = DitherOptions(
            ratio=ratio, jitter=jitter, seed=seed, edge_falloff=edge_falloff,
        )
        pal = _active_palette(cfg.palette, disable, enable)
    except DitherError as exc:
        raise _fail(str(exc)) from exc

    images = _collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
    if not images:
        console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
        console.print("Place .jpg / .png / ... files there and re-run.\n")
        raise typer.Exit(0)

    output_dir.mkdir(parents=True, exist_ok=True)

    console.print(Panel.fit(
        f"[bold]WPLACE DITHER[/bold]\n"
        f"Palette: {cfg.palette} ({len(pal)} colours)  |  Scale: {cfg.scale}\n"
        f"Ratio: {options.ratio}  |  Jitter: {options.jitter}  |  Seed: {options.seed}\n"
        f"Images: {len(images)}",
        border_style="cyan",
    ))

    failures = 0
    for idx, img_path in enumerate(images, 1):
        stem = img_path.stem
        console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
        t_total = time.perf_counter()

        try:
            img = load_rgba(img_path, cfg.scale, cfg.interpolation)
        except (OSError, UnidentifiedImageError, DitherError) as exc:
            logger.error("Skipping %s: %s", img_path.name, exc)
            failures += 1
            continue
        h, w = img.shape[:2]
        logger.info("Source: %dx%d = %d pixels", w, h, w * h)

        result = run_dither(img, pal, options=options)

        out_path = output_dir / f"{stem}_dithered.{cfg.output_format}"
        save_rgba(result, out_path)
        if cfg.save_comparison:
            make_comparison_grid(
                img, result, output_dir / f"{stem}_comparison.png", cfg.pixel_upscale,
            )

        elapsed = time.perf_counter() - t_total
        console.print(
            f"  [green]✓[/green] {out_path.name}  "
            f"[dim]{w}x{h}  error={_mean_error(img, result):.1f}"
            f"  time={elapsed:.1f}s[/dim]"
        )

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]"
        + (f"  [red]({failures} skipped)[/red]" if failures else ""),
        border_style="green",
    ))


# -- replay command ----------------------------------------------------

@app.command()
def replay(
    link: str = typer.Argument(..., help="Share link or query string"),
    target: Path | None = typer.Option(
        None, "--image", help="Image to use instead of the link's src",
    ),
    output: Path = typer.Option(Path("output/replay.png"), "--output", "-o"),
    palette: str = typer.Option(_APP.palette, "--palette", "-p"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Re-run a dithering pass from a share link."""
    _setup_logging(verbose)

    try:
        settings = ShareSettings.from_query(link)
        source = target or (Path(settings.src) if settings.src else None)
        if source is None:
            raise _fail("The link has no src; pass --image")
        pal = select_palette(
            resolve_palette(palette),
            disabled=settings.disable,
            enabled=settings.enable,
        )
        img = load_rgba(
            source, settings.scale or 1.0, settings.interpolation or _APP.interpolation,
        )
        result = run_dither(img, pal, options=settings.options)
    except DitherError as exc:
        raise _fail(str(exc)) from exc
    except (OSError, UnidentifiedImageError) as exc:
        raise _fail(f"Could not read image: {exc}") from exc

    output.parent.mkdir(parents=True, exist_ok=True)
    save_rgba(result, output)
    console.print(f"[green]✓[/green] Saved to {output}")


# -- share command -----------------------------------------------------

@app.command()
def share(
    base_url: str = typer.Argument(..., help="Page URL the link should open"),
    src: str = typer.Option("", "--src", help="Image source reference"),
    scale: float | None = typer.Option(None, "--scale"),
    interpolation: str | None = typer.Option(None, "--interpolation"),
    ratio: float = typer.Option(_DEFAULTS.ratio, "--ratio"),
    error_clip: float = typer.Option(_DEFAULTS.error_clip, "--error-clip"),
    jitter: float = typer.Option(_DEFAULTS.jitter, "--jitter"),
    balance: float = typer.Option(_DEFAULTS.channel_balance, "--balance"),
    gamma: float = typer.Option(_DEFAULTS.gamma_input, "--gamma"),
    seed: int = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    grey_penalty: float = typer.Option(_DEFAULTS.chroma_weight, "--grey-penalty"),
    edge_falloff: float = typer.Option(_DEFAULTS.edge_falloff, "--edge-falloff"),
    disable: str | None = typer.Option(None, "--disable"),
) -> None:
    """Print a share link for the given settings."""
    try:
        options = DitherOptions(
            ratio=ratio,
            error_clip=error_clip,
            jitter=jitter,
            channel_balance=balance,
            gamma_input=gamma,
            seed=seed,
            chroma_weight=grey_penalty,
            edge_falloff=edge_falloff,
        )
    except DitherError as exc:
        raise _fail(str(exc)) from exc

    settings = ShareSettings(
        options=options,
        scale=scale,
        interpolation=interpolation,
        src=src,
        disable=tuple(parse_index_list(disable)),
    )
    console.print(make_share_url(base_url, settings), soft_wrap=True)


# -- palettes command --------------------------------------------------

@app.command()
def palettes(
    name: str | None = typer.Argument(None, help="Show the colours of one preset"),
) -> None:
    """List palette presets, or the indexed colours of one."""
    if name is None:
        table = Table("Preset", "Colours")
        for key, hex_list in PALETTES.items():
            table.add_row(key, str(len(hex_list)))
        console.print(table)
        return

    try:
        pal = get_palette(name)
    except DitherError as exc:
        raise _fail(str(exc)) from exc

    table = Table("Index", "Hex", "Swatch")
    for i, rgb in enumerate(pal):
        hx = rgb_to_hex(rgb)
        table.add_row(str(i), hx, f"[on {hx}]      [/]")
    console.print(table)


if __name__ == "__main__":
    app()
