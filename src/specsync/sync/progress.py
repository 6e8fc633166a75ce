"""Task progress derived from the checkbox list in ``tasks.md``.

A task line is a markdown list item with a checkbox::

    - [x] 1.2 Implement the parser
    - [ ] Write documentation

A leading ``N``, ``N.`` or ``N.M`` becomes the task id; unnumbered tasks get
``task-<position>``.  Indented items and dotted ids are subtasks and count
toward the totals like any other task.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from .local_store import LocalDocumentStore
from .models import ActivityItem, DocumentKey, ProgressData

logger = logging.getLogger(__name__)

_TASK_RE = re.compile(r"^\s*-\s*\[([x\s])\]")
_TASK_PREFIX_RE = re.compile(r"^\s*-\s*\[[x\s]\]\s*")
_TASK_ID_RE = re.compile(r"^(\d+(?:\.\d+)?)\.?\s+(.+)$")

MAX_RECENT_ACTIVITY = 10
ACTIVITY_RETENTION = timedelta(days=7)


@dataclass
class ParsedTask:
    id: str
    title: str
    level: int
    completed: bool

    @property
    def is_subtask(self) -> bool:
        return self.level > 0 or "." in self.id


def parse_tasks(content: str) -> list[ParsedTask]:
    """Extract checkbox tasks from a tasks document, in document order."""
    tasks: list[ParsedTask] = []
    for line in content.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        match = _TASK_RE.match(line)
        if not match:
            continue

        text = _TASK_PREFIX_RE.sub("", line, count=1).strip()
        id_match = _TASK_ID_RE.match(text)
        if id_match:
            task_id, title = id_match.group(1), id_match.group(2)
        else:
            task_id, title = f"task-{len(tasks) + 1}", text

        tasks.append(
            ParsedTask(
                id=task_id.strip(),
                title=title.strip(),
                level=len(line) - len(line.lstrip()),
                completed=match.group(1) == "x",
            )
        )
    return tasks


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_progress(
    tasks: list[ParsedTask],
    previous: ProgressData | None = None,
    now: datetime | None = None,
) -> ProgressData:
    """Compute a progress record, carrying activity over from *previous*.

    Newly completed tasks (not yet listed in the previous activity) come
    first.  Older entries are kept while their task is still completed or
    they are less than a week old.  Without a previous record the activity
    list starts empty.
    """
    now = now or datetime.now(timezone.utc)
    total = len(tasks)
    completed = sum(1 for task in tasks if task.completed)
    percentage = round(completed / total * 100) if total else 0

    activity: list[ActivityItem] = []
    if previous is not None:
        seen = {item.task_id for item in previous.recent_activity}
        for task in tasks:
            if task.completed and task.id not in seen:
                activity.append(
                    ActivityItem(
                        task_id=task.id,
                        title=task.title,
                        completed_at=now.isoformat(),
                    )
                )

        completed_ids = {task.id for task in tasks if task.completed}
        for item in previous.recent_activity:
            if len(activity) >= MAX_RECENT_ACTIVITY:
                break
            when = _parse_timestamp(item.completed_at)
            recent = when is not None and now - when < ACTIVITY_RETENTION
            if item.task_id in completed_ids or recent:
                activity.append(item)

    return ProgressData(
        total_tasks=total,
        completed_tasks=completed,
        percentage=percentage,
        last_updated=now.isoformat(),
        recent_activity=activity[:MAX_RECENT_ACTIVITY],
        milestones=list(previous.milestones) if previous else [],
    )


class ProgressTracker:
    """Recompute ``progress.json`` from ``tasks.md``."""

    def __init__(
        self,
        store: LocalDocumentStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def update(self, specs_path: Path) -> ProgressData | None:
        """Write a fresh progress record; ``None`` if there is no tasks.md."""
        doc = self._store.read_document(specs_path, DocumentKey.TASKS)
        if doc is None:
            return None
        previous = self._store.read_progress(specs_path)
        progress = calculate_progress(
            parse_tasks(doc.content), previous, now=self._clock()
        )
        self._store.write_progress(specs_path, progress)
        logger.info(
            "Progress: %d/%d tasks (%d%%)",
            progress.completed_tasks,
            progress.total_tasks,
            progress.percentage,
        )
        return progress
