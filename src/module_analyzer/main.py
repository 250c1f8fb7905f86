"""CLI entrypoint for module-analyzer."""

from pathlib import Path

import rich_click as click

from module_analyzer import __version__
from module_analyzer.controllers import AnalyzeRunCommand, AnalyzerCliController
from module_analyzer.errors import AnalyzerError, ConfigError

click.rich_click.USE_MARKDOWN = True
ANALYZER_CONTROLLER = AnalyzerCliController()


@click.command()
@click.version_option(version=__version__, prog_name="module-analyzer")
@click.option("--dry-run", is_flag=True, help="Show what would run without launching workers.")
@click.option("--reset", is_flag=True, help="Clear all `analyzed` flags and the failed list.")
@click.option(
    "--module",
    "module",
    default=None,
    metavar="NAME[/SUB]",
    help="Analyze a single module, or `Parent/Child` for one sub-module.",
)
@click.option("--retry-failed", is_flag=True, help="Retry only previously failed modules.")
@click.option(
    "--delay",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait between worker launches.",
)
@click.option(
    "--parallel",
    "-p",
    type=int,
    default=None,
    help="Number of concurrent workers (clamped to the configured maximum).",
)
@click.option("--no-timeout", is_flag=True, help="Disable worker timeouts for every phase.")
@click.option(
    "--timeout",
    type=click.IntRange(min=0),
    default=None,
    help="Analysis timeout in seconds for every module, overriding complexity defaults.",
)
@click.option("--verbose", is_flag=True, help="Show debug output on the console.")
@click.option("--skip-validation", is_flag=True, help="Skip the markdown validation phase.")
@click.option("--skip-conversion", is_flag=True, help="Skip the DOCX conversion phase.")
@click.option("--validation-only", is_flag=True, help="Only run markdown validation.")
@click.option("--conversion-only", is_flag=True, help="Only run DOCX conversion.")
@click.option(
    "--document",
    "document_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Module structure JSON document.",
)
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for queue, failed list and logs.",
)
def module_analyzer(  # noqa: PLR0913
    dry_run: bool,
    reset: bool,
    module: str | None,
    retry_failed: bool,
    delay: float | None,
    parallel: int | None,
    no_timeout: bool,
    timeout: int | None,
    verbose: bool,
    skip_validation: bool,
    skip_conversion: bool,
    validation_only: bool,
    conversion_only: bool,
    document_path: Path | None,
    state_dir: Path | None,
) -> None:
    """Analyze every module of a module structure document with an LLM worker.

    Runs **analysis**, then **markdown validation**, then **DOCX conversion**.
    Completed modules are recorded in the document, so an interrupted run
    resumes where it stopped.
    """

    try:
        result = ANALYZER_CONTROLLER.run(
            AnalyzeRunCommand(
                document_path=document_path,
                state_dir=state_dir,
                dry_run=dry_run,
                reset=reset,
                module=module,
                retry_failed=retry_failed,
                delay=delay,
                parallel=parallel,
                no_timeout=no_timeout,
                timeout=timeout,
                verbose=verbose,
                skip_validation=skip_validation,
                skip_conversion=skip_conversion,
                validation_only=validation_only,
                conversion_only=conversion_only,
            ),
        )
    except ConfigError as error:
        raise click.UsageError(str(error)) from error
    except AnalyzerError as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if result.exit_code:
        raise SystemExit(result.exit_code)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    module_analyzer()
