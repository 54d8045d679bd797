"""History exporter for StudyTrack.

Generates Word (.docx) documents from the session history using python-docx.
"""

import logging
import os
from datetime import datetime

from studytrack.core.models import SessionRecord
from studytrack.reporting.formatter import NodeSummary, TextFormatter, format_time, group_by_date

logger = logging.getLogger(__name__)


class HistoryExporter:
    """Exports project summaries and the session history to a Word document."""

    def export(
        self,
        history: list[SessionRecord],
        summaries: list[NodeSummary],
        user_name: str,
        output_path: str,
    ) -> str:
        """Generate a .docx file.

        Args:
            history: Session records, most recent first.
            summaries: Effective times per project from ``project_summary``.
            user_name: The user's configured display name.
            output_path: File path for the generated .docx file.

        Returns:
            The path to the generated file.

        Raises:
            ImportError: If python-docx is not installed.
        """
        try:
            from docx import Document
        except ImportError:
            raise ImportError(
                "python-docx is required for history export. "
                "Install it with: pip install python-docx"
            )

        parent_dir = os.path.dirname(output_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        doc = Document()
        self._add_title(doc, user_name)

        doc.add_heading("Project Summary", level=1)
        if summaries:
            rows = []
            for project in summaries:
                rows.append((project.name, format_time(project.total_ms)))
                for topic in project.children:
                    rows.append((f"    {topic.name}", format_time(topic.total_ms)))
            self._add_table(doc, ["Project", "Total Time"], rows)
        else:
            doc.add_paragraph("No projects to summarize.")

        doc.add_heading("Sessions", level=1)
        grouped = group_by_date(history)
        if not grouped:
            doc.add_paragraph("No sessions recorded yet.")
        for day, records in grouped.items():
            doc.add_heading(day.strftime("%A, %B %d, %Y"), level=2)
            rows = [
                (
                    record.start_time.strftime("%H:%M"),
                    " > ".join(n for n in (record.project_name, record.topic_name, record.subtopic_name) if n),
                    format_time(record.duration_ms),
                )
                for record in records
            ]
            self._add_table(doc, ["Start", "Task", "Duration"], rows)
            total = sum(r.duration_ms for r in records)
            doc.add_paragraph(f"Daily total: {TextFormatter.format_duration(total)}")

        doc.save(output_path)
        logger.info("Exported %d sessions to %s", len(history), output_path)
        return output_path

    def _add_title(self, doc, user_name: str) -> None:
        from docx.enum.text import WD_ALIGN_PARAGRAPH
        from docx.shared import Pt

        title_para = doc.add_paragraph()
        title_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = title_para.add_run("StudyTrack History")
        run.bold = True
        run.font.size = Pt(24)

        date_para = doc.add_paragraph()
        date_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = date_para.add_run(f"Generated {datetime.now().strftime('%B %d, %Y')}")
        run.font.size = Pt(14)

        if user_name:
            name_para = doc.add_paragraph()
            name_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
            run = name_para.add_run(f"Prepared for: {user_name}")
            run.font.size = Pt(12)

    def _add_table(self, doc, headers: list[str], rows: list[tuple[str, ...]]) -> None:
        table = doc.add_table(rows=1 + len(rows), cols=len(headers))
        table.style = "Light Grid Accent 1"

        for cell, text in zip(table.rows[0].cells, headers):
            cell.text = text
            for paragraph in cell.paragraphs:
                for run in paragraph.runs:
                    run.bold = True

        for i, row in enumerate(rows, start=1):
            for cell, text in zip(table.rows[i].cells, row):
                cell.text = text

        doc.add_paragraph()  # spacing after table
