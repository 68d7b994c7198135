"""
Workflow result ingestion.

Reads the structured result of a generation run (YAML, which also covers
JSON) and converts its executed steps into StepOutcomes. Validation is done
up front for the whole document, so a malformed result is rejected before
any persisted state is touched.

Expected shape::

    steps:
      - id: create-user-model
        type: create_file
        status: SUCCESS
        execution_log: "Step completed successfully in 1200ms"
        template: "..."
      - id: open-pr
        type: pull_request
        status: FAILED
        execution_log: "gh: PR creation failed: no commits between branches"

With a layer context, a ``<layer>_steps`` list takes precedence over
``steps``.
"""

from pathlib import Path
from typing import Any

import structlog
import yaml

from step_feedback.enums import StepStatus
from step_feedback.exceptions import MalformedInputError
from step_feedback.learning.classifier import extract_duration
from step_feedback.models.domain import LayerInfo, StepOutcome

log = structlog.get_logger(__name__)

REQUIRED_STEP_FIELDS = ("id", "type", "status")


def load_workflow_result(path: str | Path, layer_info: LayerInfo | None = None) -> list[StepOutcome]:
    """Load a workflow result file and return the outcomes of its executed steps.

    Raises:
        MalformedInputError: If the file cannot be read or parsed, or lacks
            required structure
    """
    source = str(path)
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedInputError(f"Cannot read workflow result: {e}", source=source) from e

    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise MalformedInputError(f"Invalid YAML in workflow result: {e}", source=source) from e

    return parse_workflow_result(document, layer_info=layer_info, source=source)


def _select_steps(document: dict[str, Any], layer_info: LayerInfo | None) -> Any:
    if layer_info is not None:
        layer_steps = document.get(f"{layer_info.layer.value}_steps")
        if isinstance(layer_steps, list):
            return layer_steps
    return document.get("steps")


def parse_workflow_result(
    document: Any,
    layer_info: LayerInfo | None = None,
    source: str | None = None,
) -> list[StepOutcome]:
    """Validate a parsed workflow result and convert it to StepOutcomes.

    Steps whose status is neither SUCCESS nor FAILED were not executed and
    are skipped. Step ids must be unique within the document.
    """
    if not isinstance(document, dict):
        raise MalformedInputError("Workflow result must be a mapping", source=source)

    steps = _select_steps(document, layer_info)
    if steps is None:
        raise MalformedInputError("Workflow result has no 'steps' list", source=source)
    if not isinstance(steps, list):
        raise MalformedInputError("'steps' must be a list", source=source)

    outcomes: list[StepOutcome] = []
    skipped = 0
    seen_ids: set[str] = set()

    for index, step in enumerate(steps):
        if not isinstance(step, dict):
            raise MalformedInputError(f"Step #{index} must be a mapping", source=source)

        missing = [name for name in REQUIRED_STEP_FIELDS if step.get(name) in (None, "")]
        if missing:
            raise MalformedInputError(
                f"Step #{index} is missing required field(s): {', '.join(missing)}", source=source
            )

        step_id = str(step["id"])
        if step_id in seen_ids:
            raise MalformedInputError(f"Step #{index} reuses step id '{step_id}'", source=source)
        seen_ids.add(step_id)

        status = str(step["status"]).upper()
        if status not in (StepStatus.SUCCESS.value, StepStatus.FAILED.value):
            skipped += 1
            log.debug("step_not_executed", step_id=step_id, status=status)
            continue

        execution_log = step.get("execution_log") or ""
        if not isinstance(execution_log, str):
            raise MalformedInputError(f"Step #{index} execution_log must be text", source=source)

        template = step.get("template")
        if template is not None and not isinstance(template, str):
            raise MalformedInputError(f"Step #{index} template must be text", source=source)

        success = status == StepStatus.SUCCESS.value
        outcomes.append(
            StepOutcome(
                step_id=step_id,
                step_type=str(step["type"]),
                success=success,
                duration_ms=extract_duration(execution_log),
                diagnostic=None if success else execution_log,
                template=template,
            )
        )

    log.info("workflow_result_parsed", source=source, executed=len(outcomes), skipped=skipped)
    return outcomes
