# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import click

from crossci.dag import job_levels, validate_pipeline
from crossci.detection import detect_project
from crossci.errors import PipelineFileError, PresetError, ValidationError
from crossci.generator import Generator, write_outputs
from crossci.loader import load_pipeline
from crossci.model import Pipeline
from crossci.presets import PRESETS, expand_preset
from crossci.registry import default_registry
from crossci.settings import Settings, load_settings
from crossci.ui.console import Console, get_console, set_console


def _parse_overrides(ctx, param, values: Sequence[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", ctx=ctx, param=param)
        out[key.strip()] = value.strip()
    return out


def _split_platforms(values: Sequence[str]) -> List[str]:
    # accept both --platform a --platform b and --platform a,b
    return [p.strip() for v in values for p in v.split(",") if p.strip()]


def resolve_pipeline(
    preset: str | None,
    config_path: str | None,
    overrides: Dict[str, str],
    settings: Settings,
) -> Tuple[Pipeline, str]:
    """
    Pick the pipeline source: --config file, --preset, or the preset
    detected in the current directory.

    Returns the pipeline plus a short description of where it came from.
    """
    console = get_console()

    if config_path:
        if overrides:
            raise click.UsageError("--set only applies to presets")
        return load_pipeline(config_path), config_path

    opts: Dict[str, object] = dict(overrides)
    opts.setdefault("branches", settings.default_branches)

    if preset:
        return expand_preset(preset, opts), f"preset {preset}"

    found = detect_project(".")
    if found is None:
        raise click.UsageError(
            "no pipeline source: pass --preset NAME or --config FILE "
            "(no project markers found in the current directory)"
        )
    console.print_debug(f"Detected {found.preset} from {found.metadata.get('manifest', '?')}")
    if found.language_version:
        opts.setdefault("version", found.language_version)
    if "dockerfile" in found.metadata:
        opts.setdefault("dockerfile", found.metadata["dockerfile"])
    return expand_preset(found.preset, opts), f"detected preset {found.preset}"


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """crossci: generate CI configuration for several platforms from one pipeline."""
    # Initialize console with debug flag
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    try:
        ctx.obj["settings"] = load_settings()
    except ValueError as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(2)


@cli.command()
@click.option("--preset", default=None, help="Preset id (see `crossci presets`)")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Pipeline file (.py workflow or .yml document)",
)
@click.option(
    "--platform",
    "platforms",
    multiple=True,
    help="Target platform; repeat or comma-separate (default: all, or CROSSCI_PLATFORMS)",
)
@click.option(
    "--set",
    "overrides",
    multiple=True,
    metavar="KEY=VALUE",
    callback=_parse_overrides,
    help="Preset option override (version, coverage, lint, security, release, matrix_versions, branches)",
)
@click.option("--output", "-o", "output_dir", default=None, help="Output directory (default: CROSSCI_OUTPUT_DIR or .)")
@click.option("--force", is_flag=True, default=False, help="Overwrite existing files")
@click.option("--dry-run", is_flag=True, default=False, help="Print generated files instead of writing them")
@click.option("--workers", default=None, type=int, help="Number of parallel workers")
@click.pass_context
def generate(ctx, preset, config_path, platforms, overrides, output_dir, force, dry_run, workers):
    """Generate CI configuration for every requested platform."""
    console = get_console()
    settings: Settings = ctx.obj["settings"]

    if preset and config_path:
        raise click.UsageError("--preset and --config are mutually exclusive")

    try:
        pipeline, source = resolve_pipeline(preset, config_path, overrides, settings)
        registry = default_registry()
        requested = _split_platforms(platforms) or list(settings.platforms) or registry.platforms()

        console.print_generation_started(pipeline.name, source, len(pipeline.jobs), requested)

        generator = Generator(registry, max_workers=workers or settings.max_workers)
        results = generator.generate_many(pipeline, requested)

        if not dry_run:
            write_outputs(results, output_dir or settings.output_dir, force=force)

    except ValidationError as e:
        console.print_error(
            "Invalid pipeline",
            e.message,
            details=[f"{e.kind.value}", *([f"jobs: {', '.join(e.jobs)}"] if e.jobs else [])],
        )
        sys.exit(1)
    except (PresetError, PipelineFileError) as e:
        console.print_error("Could not build pipeline", str(e))
        sys.exit(1)
    except FileExistsError as e:
        console.print_error("Output exists", str(e), suggestion="Re-run with --force to overwrite.")
        sys.exit(1)
    except click.ClickException:
        raise
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    root = Path(output_dir or settings.output_dir)
    for r in results:
        if r.ok and r.file is not None:
            if dry_run:
                console.print_file(r.file.path, r.file.content)
            console.print_platform_ok(r.platform, str(root / r.file.path), written=not dry_run)
        else:
            console.print_platform_failed(r.platform, str(r.error))
            if console.debug and r.error is not None:
                console.print_exception(r.error)

    console.print_results({r.platform: "ok" if r.ok else "failed" for r in results})

    if any(not r.ok for r in results):
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", required=True, type=click.Path(dir_okay=False))
def validate(config_path):
    """Load and validate a pipeline file."""
    console = get_console()
    try:
        pipeline = validate_pipeline(load_pipeline(config_path))
    except PipelineFileError as e:
        console.print_error("Could not load pipeline", str(e))
        sys.exit(1)
    except ValidationError as e:
        console.print_error("Invalid pipeline", str(e))
        sys.exit(1)

    console.print_info(f"Pipeline '{pipeline.name}' is valid ({len(pipeline.jobs)} jobs)")
    for i, level in enumerate(job_levels(pipeline.jobs), start=1):
        console.print_info(f"  stage {i}: {', '.join(level)}")


@cli.command()
def presets():
    """List available presets."""
    console = get_console()
    console.print_header("Presets")
    console.print_list([(p.id, p.description) for p in PRESETS.values()])


@cli.command()
def platforms():
    """List supported platforms."""
    console = get_console()
    console.print_header("Platforms")
    registry = default_registry()
    console.print_list([
        (pid, "native matrix" if registry.get(pid).native_matrix else "matrix expanded into jobs")
        for pid in registry.platforms()
    ])


@cli.command()
@click.argument("directory", default=".", type=click.Path(file_okay=False))
def detect(directory):
    """Detect the preset matching a project directory."""
    console = get_console()
    found = detect_project(directory)
    if found is None:
        console.print_error(
            "No preset matched",
            "No Cargo.toml, go.mod, pyproject.toml, setup.py, requirements.txt, "
            f"Dockerfile or compose file in {directory}",
        )
        sys.exit(1)
    console.print_info(found.preset)
    if found.language_version:
        console.print_debug(f"language version {found.language_version}")


if __name__ == "__main__":
    cli()
