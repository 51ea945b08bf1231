"""TeamPulse CLI interface.

Commands:
- analyze: Generate retrospective insights from an activity bundle
- categorize: Categorize a single item against a rule set
- check: Validate model provider connectivity
- init: Initialize TeamPulse configuration

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log output for CI
- --version: Show version and exit
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer

from teampulse import __version__
from teampulse.config import TeamPulseConfig, create_default_config, load_config
from teampulse.utils.logging import configure_from_cli, get_logger, log_progress_event

# Create Typer app
app = typer.Typer(
    name="teampulse",
    help="Retrospective insights from team activity",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: TeamPulseConfig | None = None
_logger = get_logger()

BUCKET_HEADINGS = {
    "wentWell": "✅ What went well",
    "didntGoWell": "⚠️  What didn't go well",
    "actionItems": "🎯 Action items",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"teampulse {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """TeamPulse - Retrospective Insight Generator.

    Turns issue tracker, chat and code host activity into what went well,
    what didn't go well, and action items.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug("Loaded config from: %s", _config.config_path)
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except Exception as e:
        _logger.error("Failed to load config: %s", e)
        raise typer.Exit(1)


def _current_config() -> TeamPulseConfig:
    return _config or TeamPulseConfig()


# =============================================================================
# analyze command
# =============================================================================


def _load_bundle(path: Path) -> dict[str, list[dict[str, Any]]]:
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
        raise ValueError("Bundle must map each source name to a list of records")
    return data


def _print_insights(result: Any) -> None:
    for bucket, insights in result.insights.items():
        typer.echo(f"\n{BUCKET_HEADINGS[bucket.value]} ({len(insights)})")
        for insight in insights:
            typer.echo(f"  • {insight.title} [{insight.category or 'uncategorized'}]")
            if insight.details and insight.details != insight.title:
                typer.echo(f"     └─ {insight.details}")


@app.command()
def analyze(
    bundle: Annotated[
        Path,
        typer.Argument(
            help="JSON file mapping source name to a list of activity records",
            exists=True,
            dir_okay=False,
        ),
    ],
    start: Annotated[str, typer.Option("--start", help="First day (YYYY-MM-DD)")],
    end: Annotated[str, typer.Option("--end", help="Last day (YYYY-MM-DD)")],
    member: Annotated[
        list[str] | None,
        typer.Option("--member", "-m", help="Team member (repeatable)"),
    ] = None,
    no_llm: Annotated[
        bool,
        typer.Option("--no-llm", help="Skip generative analysis (rule-based insights only)"),
    ] = False,
    fail_fast: Annotated[
        bool,
        typer.Option("--fail-fast", help="Stop on the first error instead of degrading"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the result as JSON"),
    ] = False,
) -> None:
    """Generate retrospective insights from an activity bundle.

    Exit codes:
        0: Insights generated from every source and analyzer
        1: Error, or no insights could be produced
        2: Insights generated with degradation (a source or the model failed)
    """
    from teampulse.errors import ErrorHandler, PipelineFatalError
    from teampulse.models.activity import DateRange
    from teampulse.models.analysis import AnalysisStatus
    from teampulse.pipeline import InsightPipeline, PipelineOptions

    try:
        date_range = DateRange.from_strings(start, end)
        data = _load_bundle(bundle)
    except (OSError, ValueError) as e:
        _logger.error("Invalid input: %s", e)
        raise typer.Exit(1)

    collectors = {source: (lambda _range, items=items: items) for source, items in data.items()}
    options = PipelineOptions(
        skip_llm=no_llm,
        fail_fast=fail_fast,
        progress_observers=[log_progress_event],
    )
    pipeline = InsightPipeline(config=_current_config())

    _logger.info("Analyzing %d sources for %s to %s", len(collectors), start, end)
    try:
        result = asyncio.run(pipeline.run(collectors, date_range, member or [], options=options))
    except PipelineFatalError as e:
        friendly = ErrorHandler().user_friendly(e.error)
        _logger.error("%s: %s", friendly.title, friendly.message)
        for action in friendly.actions:
            _logger.error("  • %s", action)
        raise typer.Exit(1)
    except Exception as e:
        _logger.error("Pipeline failed: %s", e)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_insights(result)
        typer.echo()

    for error in result.errors:
        _logger.warning("[%s] %s", error.type, error.message)

    if result.status == AnalysisStatus.FAILED:
        raise typer.Exit(1)
    if result.status == AnalysisStatus.DEGRADED:
        raise typer.Exit(2)
    raise typer.Exit(0)


# =============================================================================
# categorize command
# =============================================================================


@app.command()
def categorize(
    title: Annotated[str, typer.Argument(help="Item title")],
    body: Annotated[str, typer.Option("--body", "-b", help="Item description")] = "",
    label: Annotated[
        list[str] | None,
        typer.Option("--label", "-l", help="Label name (repeatable)"),
    ] = None,
    rules: Annotated[
        str,
        typer.Option("--rules", "-r", help="Rule set: retro or change"),
    ] = "retro",
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the result as JSON"),
    ] = False,
) -> None:
    """Categorize a single item against a rule set."""
    from teampulse.analyzers import Categorizer, get_rule_set

    try:
        rule_set = get_rule_set(rules)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    item = {"title": title, "body": body, "labels": label or []}
    result = Categorizer().categorize(item, rule_set)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(f"\n🏷️  {result.category} ({result.confidence:.0%} confidence)")
    typer.echo(f"     └─ {result.reasoning}")
    for alternative in result.alternatives:
        typer.echo(f"  alternative: {alternative.category} ({alternative.confidence:.0%})")


# =============================================================================
# check command
# =============================================================================


@app.command()
def check(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
) -> None:
    """Validate model provider connectivity.

    Exit codes:
        0: Provider reachable
        1: Provider unreachable or misconfigured
        2: Generative analysis disabled (rule-based insights only)
    """
    from teampulse.llm import GenerativeAnalyzer, ProviderNotAvailableError

    llm_config = _current_config().llm
    if not llm_config.enabled:
        typer.echo("⚠️  Generative analysis is disabled; only rule-based insights are produced")
        raise typer.Exit(2)

    for warning in llm_config.validate():
        _logger.warning(warning)

    try:
        analyzer = GenerativeAnalyzer(llm_config)
    except ProviderNotAvailableError as e:
        _logger.error(e.message)
        raise typer.Exit(1)

    result = asyncio.run(analyzer.test_configuration())

    if json_output:
        typer.echo(json.dumps(result, indent=2))
    else:
        status = "✅" if result["success"] else "❌"
        location = "local" if result["local"] else "hosted"
        typer.echo(f"\n  {status} {result['provider']} / {result['model']} ({location})")
        if result["success"]:
            typer.echo(f"     └─ responded in {result['response_time_ms']:.0f} ms")
        else:
            typer.echo(f"     └─ {result['error']}")
        typer.echo()

    raise typer.Exit(0 if result["success"] else 1)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing config"),
    ] = False,
) -> None:
    """Initialize TeamPulse configuration.

    Writes .teampulse/config.yaml with commented defaults.
    """
    config_dir = Path(".teampulse")
    config_dir.mkdir(exist_ok=True)

    config_file = config_dir / "config.yaml"
    if config_file.exists() and not force:
        _logger.error("Config already exists: %s", config_file)
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_file.write_text(create_default_config())
    typer.echo(f"📝 Configuration written to: {config_file}")


if __name__ == "__main__":
    app()
