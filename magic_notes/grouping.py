"""Transcript post-processing for display and export."""

from typing import Iterable, List, Optional

from .models import TranscriptEntry


def group_transcript(entries: Iterable[TranscriptEntry]) -> List[TranscriptEntry]:
    """
    Merge consecutive transcript entries from the same speaker into one entry.

    Rules:
    - Only consecutive entries with an identical speaker are merged
    - Texts are joined with a single newline
    - The merged entry keeps the timestamp of the first entry in the run

    Grouping an already grouped transcript returns it unchanged.

    Args:
        entries: Transcript entries in chronological order

    Returns:
        List of grouped entries, one per run of same-speaker turns
    """
    grouped: List[TranscriptEntry] = []
    current: Optional[TranscriptEntry] = None

    for entry in entries:
        if current is not None and current.speaker == entry.speaker:
            current = current.model_copy(update={"text": f"{current.text}\n{entry.text}"})
            continue

        if current is not None:
            grouped.append(current)
        current = entry.model_copy()

    if current is not None:
        grouped.append(current)

    return grouped
