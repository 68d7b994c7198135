"""CLI entry point for the step-feedback engine."""

import json
import sys

import click
import structlog

from step_feedback.config.settings import FeedbackSettings
from step_feedback.engine.orchestrator import FeedbackOrchestrator
from step_feedback.engine.state_manager import StateManager
from step_feedback.enums import Layer, Target
from step_feedback.exceptions import StepFeedbackError
from step_feedback.models.domain import LayerInfo
from step_feedback.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

LAYER_CHOICES = click.Choice([layer.value for layer in Layer])
TARGET_CHOICES = click.Choice([target.value for target in Target])


def _layer_info(layer: str | None, target: str | None) -> LayerInfo | None:
    if layer is None:
        if target is not None:
            raise click.UsageError("--target requires --layer")
        return None
    return LayerInfo(layer=Layer(layer), target=Target(target or Target.BACKEND.value))


@click.group()
@click.option("--config", "config_path", default=None, type=click.Path(), help="Path to configuration file")
@click.option("--state-dir", default=None, help="Override the state directory")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    help="Log output format (logs go to stderr)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, state_dir: str | None, log_level: str, log_format: str) -> None:
    """step-feedback: learn from code-generation step outcomes."""
    configure_logging(log_level, json_output=log_format == "json")

    try:
        settings = FeedbackSettings.from_yaml(config_path) if config_path else FeedbackSettings()
    except StepFeedbackError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    if state_dir:
        settings.storage.state_directory = state_dir

    ctx.obj = {"settings": settings}


@cli.command()
@click.argument("workflow_result", type=click.Path(exists=True, dir_okay=False))
@click.option("--layer", type=LAYER_CHOICES, default=None, help="Architecture layer of the run")
@click.option("--target", type=TARGET_CHOICES, default=None, help="Build target of the run (default: backend)")
@click.pass_context
def analyze(ctx: click.Context, workflow_result: str, layer: str | None, target: str | None) -> None:
    """Ingest a workflow result and update learning state."""
    layer_info = _layer_info(layer, target)
    settings: FeedbackSettings = ctx.obj["settings"]

    try:
        with StateManager(settings.state_dir) as state:
            result = FeedbackOrchestrator(settings, state).analyze(workflow_result, layer_info)
    except StepFeedbackError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("analyze_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("analyze_unexpected", exc_info=True)
        sys.exit(1)

    click.echo(f"{click.style('[OK]', fg='green')} Analyzed {len(result.metrics)} steps ({result.failures} failed)")
    if result.evicted:
        click.echo(f"  Evicted {result.evicted} oldest metrics")
    click.echo(f"  Pending improvements: {len(result.pending)}")
    click.echo(f"  Applied improvements: {len(result.applied)}")


@cli.command()
@click.option("--layer", type=LAYER_CHOICES, default=None, help="Restrict the report to one layer")
@click.option("--target", type=TARGET_CHOICES, default=None, help="Target recorded with the layer report")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def report(ctx: click.Context, layer: str | None, target: str | None, as_json: bool) -> None:
    """Render the current learning report."""
    layer_info = _layer_info(layer, target)
    settings: FeedbackSettings = ctx.obj["settings"]

    try:
        with StateManager(settings.state_dir) as state:
            learning_report, path = FeedbackOrchestrator(settings, state).report(layer_info)
    except StepFeedbackError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("report_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("report_unexpected", exc_info=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(learning_report.to_dict(), indent=2))
    else:
        click.echo(learning_report.to_text())
        click.echo(f"\nReport saved to {path}")


@cli.command()
@click.argument("step_type")
@click.argument("success", type=click.BOOL)
@click.argument("error_message", required=False)
@click.option("--layer", type=LAYER_CHOICES, default=None, help="Architecture layer of the step")
@click.pass_context
def score(ctx: click.Context, step_type: str, success: bool, error_message: str | None, layer: str | None) -> None:
    """Calculate the reinforcement score for one step outcome.

    Examples:
        step-feedback score create_file true
        step-feedback score lint_check false "LINT FAILED: 3 problems"
    """
    layer_info = _layer_info(layer, None)
    settings: FeedbackSettings = ctx.obj["settings"]

    try:
        with StateManager(settings.state_dir) as state:
            value = FeedbackOrchestrator(settings, state).score(step_type, success, error_message, layer_info)
    except StepFeedbackError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("score_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("score_unexpected", exc_info=True)
        sys.exit(1)

    click.echo(f"Score: {round(value, 4):g}")


if __name__ == "__main__":
    cli()
