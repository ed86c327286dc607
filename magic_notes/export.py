"""
Plain-text and Markdown export of a meeting analysis.

Both formats render the summary first and then the transcript grouped by
speaker turn.
"""

import re
import unicodedata
from datetime import datetime
from typing import List, Optional

from .grouping import group_transcript
from .models import FullAnalysis, HistoryItem

APP_NAME = "Notas Mágicas"
DEFAULT_FILENAME_PREFIX = "notas-magicas"


def format_date(when: Optional[datetime] = None) -> str:
    """Local date in pt-BR style (DD/MM/YYYY)."""
    return (when or datetime.now()).strftime("%d/%m/%Y")


def format_datetime(when: Optional[datetime] = None) -> str:
    """Local date and time in pt-BR style (DD/MM/YYYY HH:MM:SS)."""
    return (when or datetime.now()).strftime("%d/%m/%Y %H:%M:%S")


def export_title(item: HistoryItem) -> str:
    """Heading used when exporting a history item."""
    if item.source == "live":
        return "Análise da Gravação"
    return f"Análise do Arquivo: {item.title}"


def _require(analysis: Optional[FullAnalysis]) -> FullAnalysis:
    if analysis is None:
        raise ValueError("No analysis to export")
    return analysis


def _summary_lines(analysis: FullAnalysis, bold_actions: bool) -> tuple[List[str], List[str]]:
    points = [f"- {p.point}" for p in analysis.summary.key_points]
    if bold_actions:
        actions = [
            f"- **{i.action}** (Responsável: {i.responsible})"
            for i in analysis.summary.action_items
        ]
    else:
        actions = [
            f"- {i.action} (Responsável: {i.responsible})"
            for i in analysis.summary.action_items
        ]
    return points, actions


def to_plain_text(analysis: Optional[FullAnalysis], title: str, when: Optional[datetime] = None) -> str:
    """
    Render an analysis as a plain-text document.

    Args:
        analysis: The analysis to export
        title: Document title shown in the header
        when: Date printed in the header (defaults to now)

    Raises:
        ValueError: If analysis is None
    """
    analysis = _require(analysis)
    points, actions = _summary_lines(analysis, bold_actions=False)
    heading = f"{APP_NAME} - {title}"

    lines = [
        heading,
        "=" * len(heading),
        f"Data: {format_date(when)}",
        "",
        "--- RESUMO ---",
        "",
        "Pontos Chave:",
        *points,
        "",
        "Ações e Responsáveis:",
        *actions,
        "",
        "--- TRANSCRIÇÃO COMPLETA ---",
        "",
    ]
    blocks = [
        f"[{entry.timestamp}] {entry.speaker}:\n{entry.text}"
        for entry in group_transcript(analysis.transcript)
    ]
    return ("\n".join(lines) + "\n" + "\n\n".join(blocks)).strip()


def _blockquote(text: str) -> str:
    return "\n".join(f"> {line}" for line in text.split("\n"))


def to_markdown(analysis: Optional[FullAnalysis], title: str, when: Optional[datetime] = None) -> str:
    """
    Render an analysis as a Markdown document.

    Every line of a transcript turn is blockquoted, including the lines
    joined together by speaker grouping.

    Raises:
        ValueError: If analysis is None
    """
    analysis = _require(analysis)
    points, actions = _summary_lines(analysis, bold_actions=True)

    lines = [
        f"# {APP_NAME} - {title}",
        "",
        f"**Data:** {format_date(when)}",
        "",
        "---",
        "",
        "## Resumo",
        "",
        "### Pontos Chave:",
        *points,
        "",
        "### Ações e Responsáveis:",
        *actions,
        "",
        "---",
        "",
        "## Transcrição Completa",
        "",
    ]
    blocks = [
        f"**[{entry.timestamp}] {entry.speaker}:**\n{_blockquote(entry.text)}"
        for entry in group_transcript(analysis.transcript)
    ]
    return ("\n".join(lines) + "\n" + "\n\n".join(blocks)).strip()


def slugify(value: str) -> str:
    """Lowercase ASCII slug; accents dropped, other characters collapsed to '-'."""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")


def export_filename(
    title: str,
    ext: str,
    prefix: str = DEFAULT_FILENAME_PREFIX,
    when: Optional[datetime] = None,
) -> str:
    """
    Build '<prefix>-<slug>-<YYYY-MM-DD>.<ext>' for a download.

    The slug comes from the title without its file extension and falls back
    to 'analise' when nothing usable is left.
    """
    stem = re.sub(r"\.[A-Za-z0-9]{1,5}$", "", title or "")
    slug = slugify(stem) or "analise"
    date = (when or datetime.now()).strftime("%Y-%m-%d")
    return f"{prefix}-{slug}-{date}.{ext.lstrip('.')}"
