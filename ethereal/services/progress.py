"""Roadmap progress calculation."""

from collections.abc import Iterable

from ethereal.schemas.roadmap import ProgressStats, Topic


def topic_progress(topic: Topic) -> tuple[int, int]:
    """Return ``(completed, total)`` for one topic."""
    completed = sum(1 for s in topic.subtopics if s.completed)
    return completed, len(topic.subtopics)


def is_topic_complete(topic: Topic) -> bool:
    """A topic is complete when it has subtopics and all of them are done."""
    completed, total = topic_progress(topic)
    return total > 0 and completed == total


def percentage(completed: int, total: int) -> int:
    """Whole percentage rounded half up, 0 for an empty roadmap."""
    if total == 0:
        return 0
    return (200 * completed + total) // (2 * total)


def compute_progress(data: Iterable[Topic]) -> ProgressStats:
    """Calculate total/completed/percentage across every topic of a roadmap.

    Order-independent: only sums are taken.
    """
    total = 0
    completed = 0
    for topic in data:
        done, count = topic_progress(topic)
        total += count
        completed += done

    return ProgressStats(
        total=total,
        completed=completed,
        percentage=percentage(completed, total),
    )
