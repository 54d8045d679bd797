"""Text formatting for StudyTrack history and summaries.

Renders the session history and per-project effective times as aligned
plain-text reports, and provides the duration formats used everywhere.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from studytrack.core.hierarchy import effective_time
from studytrack.core.models import AggregateTimers, Project, SessionRecord


@dataclass
class NodeSummary:
    """Effective time of one hierarchy node and its children."""
    id: str
    name: str
    total_ms: int
    children: list["NodeSummary"] = field(default_factory=list)


def format_time(milliseconds: int) -> str:
    """Clock-style display: ``H:MM:SS`` from one hour up, ``MM:SS`` below."""
    total_seconds = max(0, int(milliseconds) // 1000)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def group_by_date(history: list[SessionRecord]) -> dict[date, list[SessionRecord]]:
    """Group sessions by calendar day, newest day first, keeping record order."""
    grouped: dict[date, list[SessionRecord]] = defaultdict(list)
    for record in history:
        grouped[record.date].append(record)
    return {day: grouped[day] for day in sorted(grouped, reverse=True)}


def daily_totals(history: list[SessionRecord]) -> dict[date, int]:
    return {
        day: sum(r.duration_ms for r in records)
        for day, records in group_by_date(history).items()
    }


def project_summary(projects: list[Project], timers: AggregateTimers) -> list[NodeSummary]:
    """Effective time for every project, topic and sub-topic."""
    summaries = []
    for project in projects:
        topics = []
        for topic in project.topics:
            subtopics = [
                NodeSummary(s.id, s.name, effective_time(s, timers)) for s in topic.subtopics
            ]
            topics.append(NodeSummary(topic.id, topic.name, effective_time(topic, timers), subtopics))
        summaries.append(NodeSummary(project.id, project.name, effective_time(project, timers), topics))
    return summaries


class TextFormatter:
    """Formats history and summary data as human-readable plain text."""

    @staticmethod
    def format_duration(milliseconds: int) -> str:
        """Format milliseconds as 'Xh Ym' (e.g., '2h 15m').

        Truncates to whole minutes. Returns '0m' for zero/negative durations.
        """
        total_minutes = max(0, int(milliseconds)) // 60000
        hours = total_minutes // 60
        minutes = total_minutes % 60

        if hours == 0:
            return f"{minutes}m"
        return f"{hours}h {minutes}m"

    @staticmethod
    def _format_table(rows: list[tuple[str, str]], label: str, total: str) -> str:
        """Render a two-column table with a total row.

        Returns lines like:
          Project        Time
          ──────────────────
          Thesis      1:05:00
          ──────────────────
          Total       1:05:00
        """
        name_width = max([len(name) for name, _ in rows] + [len(label), len("Total")])
        time_width = max([len(t) for _, t in rows] + [len(total), len("Time")])

        header = f"  {label:<{name_width}}  {'Time':>{time_width}}"
        separator = "  " + "─" * (len(header) - 2)
        lines = [header, separator]
        for name, time_str in rows:
            lines.append(f"  {name:<{name_width}}  {time_str:>{time_width}}")
        lines.append(separator)
        lines.append(f"  {'Total':<{name_width}}  {total:>{time_width}}")
        return "\n".join(lines) + "\n"

    @staticmethod
    def format_history(history: list[SessionRecord]) -> str:
        """Render every session grouped by day, newest first."""
        if not history:
            return "No sessions recorded yet.\n"
        parts: list[str] = []
        for day, records in group_by_date(history).items():
            parts.append(f"\n{day.strftime('%A, %B %d, %Y')}\n")
            rows = []
            for record in records:
                label = record.project_name
                if record.topic_name:
                    label += f" > {record.topic_name}"
                if record.subtopic_name:
                    label += f" > {record.subtopic_name}"
                rows.append((f"{record.start_time.strftime('%H:%M')}  {label}", format_time(record.duration_ms)))
            total = format_time(sum(r.duration_ms for r in records))
            parts.append(TextFormatter._format_table(rows, "Session", total))
        return "".join(parts).lstrip("\n")

    @staticmethod
    def format_daily(history: list[SessionRecord]) -> str:
        """Render one total per day."""
        totals = daily_totals(history)
        if not totals:
            return "No daily totals to display.\n"
        rows = [(day.strftime("%B %d, %Y"), format_time(ms)) for day, ms in totals.items()]
        return TextFormatter._format_table(rows, "Day", format_time(sum(totals.values())))

    @staticmethod
    def format_summary(summaries: list[NodeSummary]) -> str:
        """Render effective times per project with indented topics and sub-topics."""
        if not summaries:
            return "No projects to summarize.\n"
        rows: list[tuple[str, str]] = []
        for project in summaries:
            rows.append((project.name, format_time(project.total_ms)))
            for topic in project.children:
                rows.append((f"  {topic.name}", format_time(topic.total_ms)))
                for subtopic in topic.children:
                    rows.append((f"    {subtopic.name}", format_time(subtopic.total_ms)))
        total = format_time(sum(p.total_ms for p in summaries))
        return TextFormatter._format_table(rows, "Project", total)
