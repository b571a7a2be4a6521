"""
Task Metadata Lookup

Resolves task metadata (MO number, name, product) for display enrichment.
The lookup is an external collaborator: a mapping or a callable. Any
failure degrades to an "unknown task" placeholder and never blocks the
numeric results.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

UNKNOWN_TASK_LABEL = 'Unknown'

UNKNOWN_TASK: Dict[str, Any] = {
    'id': None,
    'moNumber': '',
    'name': UNKNOWN_TASK_LABEL,
    'productName': '',
    'unknown': True,
}

TaskLookup = Union[Mapping[str, Mapping], Callable[[str], Optional[Mapping]]]


def resolve_task(task_lookup: Optional[TaskLookup], task_id: Optional[str]) -> Dict[str, Any]:
    """
    Look up task metadata, falling back to the unknown-task placeholder.

    Args:
        task_lookup: Mapping of task id -> metadata, or callable(task_id)
        task_id: Task id to resolve

    Returns:
        Task metadata dictionary (always a new dict)
    """
    if task_lookup is None or task_id is None:
        return dict(UNKNOWN_TASK, id=task_id)

    try:
        if callable(task_lookup) and not isinstance(task_lookup, Mapping):
            task = task_lookup(task_id)
        else:
            task = task_lookup.get(task_id)
    except Exception as e:
        logger.warning(f"Task lookup failed for {task_id}: {e}")
        return dict(UNKNOWN_TASK, id=task_id)

    if not task:
        return dict(UNKNOWN_TASK, id=task_id)

    return dict(task, id=task.get('id', task_id))


def task_label(task: Optional[Mapping]) -> str:
    """Display key for a task: MO number, then name, then product name."""
    if not task:
        return UNKNOWN_TASK_LABEL
    return task.get('moNumber') or task.get('name') or task.get('productName') or UNKNOWN_TASK_LABEL
