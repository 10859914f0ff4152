"""zipjet CLI application with Typer."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from zipjet import __version__
from zipjet.app import CollapsedFilesError, TraceMissesError
from zipjet.app.report_service import collapsed_summary
from zipjet.bootstrap import bootstrap_application
from zipjet.config import BundleConfig, TraceConfig, get_settings, set_settings
from zipjet.deps import HandlerNotFoundError, ManifestError, resolve_handler_file
from zipjet.deps.collapsed import CollapseReport
from zipjet.files import NoFilesMatchedError
from zipjet.utils.cli_output import json_response

app = typer.Typer(
    name="zipjet",
    help="Deterministic zip bundles for Node.js deployable units",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"zipjet version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", min=1, help="Units packaged in parallel"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)"),
    ] = None,
) -> None:
    """zipjet - deterministic zip bundles for Node.js deployable units."""
    settings = get_settings()
    if concurrency:
        settings.concurrency = concurrency
    if log_level:
        settings.log_level = log_level.upper()
    set_settings(settings)
    logging.basicConfig(
        level=settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _print_collapsed(collapsed: CollapseReport) -> None:
    for label, groups in (("source files", collapsed.srcs), ("dependencies", collapsed.pkgs)):
        if groups:
            typer.secho(f"Collapsed {label}:", fg=typer.colors.YELLOW)
            for line in collapsed_summary(groups):
                typer.echo(f"  {line}")


@app.command("package")
def package(
    cwd: Annotated[Path, typer.Argument(help="Build working directory")],
    bundle: Annotated[
        str,
        typer.Option("--bundle", "-b", help="Archive path, relative to the service path"),
    ],
    service_path: Annotated[
        Path | None,
        typer.Option("--service-path", help="Service root (defaults to CWD)"),
    ] = None,
    base: Annotated[
        str,
        typer.Option("--base", help="Highest directory searched for node_modules"),
    ] = ".",
    include: Annotated[
        list[str] | None,
        typer.Option("--include", "-i", help="Include pattern (repeatable)"),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-e", help="Exclude pattern (repeatable)"),
    ] = None,
    pre_include: Annotated[
        list[str] | None,
        typer.Option("--pre-include", help="Pattern applied before dependency patterns"),
    ] = None,
    root: Annotated[
        list[str] | None,
        typer.Option("--root", help="Extra dependency root directory (repeatable)"),
    ] = None,
    package_dir: Annotated[
        list[str] | None,
        typer.Option("--package", help="Workspace package directory (repeatable)"),
    ] = None,
    trace_entry: Annotated[
        list[str] | None,
        typer.Option("--trace-entry", help="Entry file pattern; enables trace mode"),
    ] = None,
    handler: Annotated[
        list[str] | None,
        typer.Option("--handler", help="Function handler (file.export); enables trace mode"),
    ] = None,
    trace_ignore: Annotated[
        list[str] | None,
        typer.Option("--trace-ignore", help="Package treated as satisfied when tracing"),
    ] = None,
    trace_allow_missing: Annotated[
        list[str] | None,
        typer.Option("--trace-allow-missing", help="Module allowed to be missing anywhere"),
    ] = None,
    dynamic_bail: Annotated[
        bool,
        typer.Option("--dynamic-bail", help="Fail when tracing misses remain"),
    ] = False,
    collapsed_bail: Annotated[
        bool,
        typer.Option("--collapsed-bail", help="Fail when collapsed files are found"),
    ] = False,
    report: Annotated[
        bool,
        typer.Option("--report", help="Include patterns and file lists in the output"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output result as JSON"),
    ] = False,
) -> None:
    """Package one unit into a deterministic zip archive."""
    if not cwd.is_dir():
        typer.secho(f"Error: Directory not found: {cwd}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    settings = get_settings()
    if collapsed_bail:
        settings = settings.model_copy(update={"collapsed_bail": True})
    container = bootstrap_application(settings)

    try:
        trace_include = list(trace_entry or [])
        service_root = service_path or cwd
        trace_include.extend(resolve_handler_file(service_root, name) for name in handler or [])
        config = BundleConfig(
            cwd=cwd,
            service_path=service_path,
            base=base,
            bundle_name=bundle,
            roots=root or [],
            packages=package_dir or [],
            pre_include=pre_include or [],
            include=include or [],
            exclude=exclude or [],
            trace_include=trace_include or None,
            trace=TraceConfig.model_validate(
                {
                    "ignores": trace_ignore or [],
                    "allow_missing_packages": trace_allow_missing or [],
                    "dynamic": {"bail": dynamic_bail},
                }
            ),
        )
        result = container.bundle_service.package(config, report=report)
    except ValidationError as exc:
        typer.secho(f"Error: Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    except (
        NoFilesMatchedError,
        ManifestError,
        HandlerNotFoundError,
        TraceMissesError,
        CollapsedFilesError,
    ) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    except OSError as exc:
        typer.secho(f"Error: Unable to read bundle files: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if json_output:
        typer.echo(
            json_response(
                "bundle_result",
                1,
                **result.model_dump(mode="json", exclude_none=True),
            )
        )
        return

    typer.secho(
        f"Packaged {result.num_files} files ({result.mode.value} mode): {result.bundle_path}",
        fg=typer.colors.GREEN,
    )
    _print_collapsed(result.collapsed)
    if result.bundle_sha256:
        typer.echo(f"SHA-256: {result.bundle_sha256}")


if __name__ == "__main__":
    app()
