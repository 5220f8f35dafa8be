"""Execution summary emails."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from cardstudio.models import Schedule, ScheduleExecution
from cardstudio.utils.dates import format_timestamp

TEMPLATE_DIR = Path(__file__).parent
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",)),
)
ENV.filters["timestamp"] = format_timestamp


def render_execution_email(schedule: Schedule, execution: ScheduleExecution) -> tuple[str, str]:
    outcome = "completed" if execution.success else "failed"
    subject = f"Schedule '{schedule.name}' {outcome}: {execution.success_count}/{execution.product_count} cards"
    html = ENV.get_template("template.html").render(subject=subject, schedule=schedule, execution=execution)
    return subject, html
