#!/usr/bin/env python3
"""
HalGuard ReportDisplay - Module for rendering detection results in the terminal.
"""

import logging

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from taxonomy.results import DetectionResult

log = logging.getLogger(__name__)

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
}

RISK_LABELS = {
    "critical": "[bold red]🛑 Critical risk[/bold red]",
    "high": "[red]⚠️ High risk[/red]",
    "medium": "[yellow]⚠️ Medium risk[/yellow]",
    "low": "[cyan]ℹ️ Low risk[/cyan]",
    "none": "[bold green]✅ No hallucinations detected[/bold green]",
}


class ReportDisplay:
    """Renders a DetectionResult with rich panels and tables."""

    def __init__(self, console=None):
        self.ui_console = console or Console()

    def print_report(self, result: DetectionResult, source_name: str = "<code>"):
        """Print the summary, findings, execution outcome and recommendations."""
        self.print_summary(result, source_name)
        self.print_findings(result)
        self.print_execution(result)
        self.print_recommendations(result)

    def print_summary(self, result: DetectionResult, source_name: str):
        summary = result.summary
        metadata = result.detection_metadata
        impact = result.business_impact

        lines = [
            RISK_LABELS.get(summary.overall_risk, summary.overall_risk),
            f"[bold]Hallucination rate:[/bold] {result.overall_hallucination_rate:.0%}",
            f"[bold]Findings:[/bold] {summary.total_hallucinations} "
            f"(critical {summary.critical_count}, high {summary.high_count}, "
            f"medium {summary.medium_count}, low {summary.low_count})",
        ]
        if summary.most_common_category:
            lines.append(f"[bold]Most common:[/bold] {summary.most_common_category}")
        lines.append(
            f"[bold]Estimated impact:[/bold] {impact.estimated_dev_time_wasted_hours:.1f}h, "
            f"${impact.estimated_cost_usd or 0:.0f}"
        )
        lines.append(
            f"[dim]{metadata.language} · {metadata.code_length} chars · "
            f"executed: {'yes' if metadata.execution_verified else 'no'} · "
            f"{metadata.analysis_time_ms:.0f}ms · v{metadata.version}[/dim]"
        )
        if metadata.failed_detectors:
            lines.append(f"[yellow]Skipped after errors: {', '.join(metadata.failed_detectors)}[/yellow]")

        self.ui_console.print(Panel("\n".join(lines), title=f"Detection Summary: {escape(source_name)}", border_style="bold"))

    def print_findings(self, result: DetectionResult):
        if not result.categories:
            return

        table = Table(title="Findings", show_header=True, header_style="bold magenta")
        table.add_column("Severity")
        table.add_column("Category", style="dim")
        table.add_column("Lines", justify="right")
        table.add_column("Conf.", justify="right")
        table.add_column("Method", style="dim")
        table.add_column("Evidence")

        for category in result.categories:
            style = SEVERITY_STYLES.get(category.severity, "")
            lines = ", ".join(str(line) for line in sorted(category.line_numbers)) or "-"
            table.add_row(
                f"[{style}]{category.severity}[/{style}]",
                f"{category.type}/{category.subtype}",
                lines,
                f"{category.confidence:.2f}",
                category.detection_method,
                escape(category.evidence[0] if category.evidence else category.description),
            )
        self.ui_console.print(table)

    def print_execution(self, result: DetectionResult):
        execution = result.execution_result
        if execution is None:
            safety = result.safety_assessment
            if safety is not None and not safety.allow_execution:
                risks = "\n".join(f"  - {escape(risk)}" for risk in safety.risks)
                self.ui_console.print(Panel(
                    f"[yellow]Execution skipped by the safety gate.[/yellow]\n{risks}",
                    title="Execution", border_style="yellow",
                ))
            return

        usage = execution.resource_usage
        status = "[green]succeeded[/green]" if execution.success else "[red]failed[/red]"
        if execution.timed_out:
            status = "[red]timed out[/red]"
        lines = [
            f"Run {status} (exit code {execution.exit_code})",
            f"Time: {usage.execution_time_ms:.0f}ms · Memory: {usage.memory_mb:.1f}MB · CPU: {usage.cpu_usage:.0f}%",
        ]
        for error in execution.errors:
            where = f" at line {error.line_number}" if error.line_number else ""
            lines.append(f"[red]{escape(error.type)}{where}:[/red] {escape(error.message)}")
        if execution.output:
            lines.append("[bold]Output:[/bold]")
            lines.append(escape(execution.output[:500]))
        self.ui_console.print(Panel("\n".join(lines), title="Execution", border_style="blue"))

    def print_recommendations(self, result: DetectionResult):
        if not result.recommendations:
            return
        for recommendation in result.recommendations:
            style = SEVERITY_STYLES.get(recommendation.priority, "bold")
            body = [escape(recommendation.description), ""]
            body.extend(f"{number}. {escape(item)}" for number, item in enumerate(recommendation.action_items, start=1))
            body.append("")
            body.append(f"[dim]{escape(recommendation.expected_impact)} · est. {recommendation.estimated_fix_time}[/dim]")
            self.ui_console.print(Panel(
                "\n".join(body),
                title=f"[{style}]{escape(recommendation.title)}[/{style}] ({recommendation.priority})",
                border_style=style,
            ))
