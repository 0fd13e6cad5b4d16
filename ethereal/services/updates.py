"""Copy-on-write updates of nested roadmap data."""

from collections.abc import Callable, Sequence

from ethereal.schemas.roadmap import SubTopic, Topic


def _check_index(kind: str, index: int, size: int) -> None:
    if not 0 <= index < size:
        raise IndexError(f"{kind} index {index} out of range (0..{size - 1})")


def update_at(
    data: Sequence[Topic],
    path: tuple[int] | tuple[int, int],
    updater: Callable[[Topic], Topic] | Callable[[SubTopic], SubTopic],
) -> list[Topic]:
    """Return a deep copy of ``data`` with the node at ``path`` replaced.

    ``(topic_index,)`` addresses a topic, ``(topic_index, sub_index)`` a
    subtopic. The input is never modified and shares no objects with the
    result.

    Raises:
        IndexError: If any index in ``path`` is out of range
    """
    topic_index = path[0]
    _check_index("topic", topic_index, len(data))
    copied = [topic.model_copy(deep=True) for topic in data]

    if len(path) == 1:
        copied[topic_index] = updater(copied[topic_index])  # type: ignore[arg-type]
        return copied

    sub_index = path[1]
    topic = copied[topic_index]
    _check_index("subtopic", sub_index, len(topic.subtopics))
    subtopics = list(topic.subtopics)
    subtopics[sub_index] = updater(subtopics[sub_index])  # type: ignore[arg-type]
    copied[topic_index] = topic.model_copy(update={"subtopics": subtopics})
    return copied


def flip_completed(subtopic: SubTopic) -> SubTopic:
    return subtopic.model_copy(update={"completed": not subtopic.completed})
