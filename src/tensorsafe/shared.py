"""Detection of tensors that alias the same backing allocation."""

import logging
from collections import defaultdict
from typing import Dict, Hashable, List, Mapping, Set

from tensorsafe.exceptions import SharedStorageError
from tensorsafe.types import TensorView

logger = logging.getLogger(__name__)


def find_shared_tensors(views: Mapping[str, TensorView]) -> List[Set[str]]:
    """Group tensor names by the allocation backing their bytes.

    Views without bytes have no allocation and are never grouped. Shapes and
    dtypes are ignored; only ``storage_key`` matters.

    Args:
        views: Mapping of tensor name to view

    Returns:
        One set of names per distinct allocation, in first-seen order
    """
    groups: Dict[Hashable, Set[str]] = defaultdict(set)
    for name, view in views.items():
        if view.nbytes == 0:
            continue
        groups[view.storage_key].add(name)
    return list(groups.values())


def check_shared_tensors(views: Mapping[str, TensorView]) -> None:
    """Reject inputs in which several names share one allocation.

    Raises:
        SharedStorageError: Naming every group of aliasing tensors
    """
    failing = [names for names in find_shared_tensors(views) if len(names) > 1]
    if failing:
        logger.debug(f"Found {len(failing)} shared-storage group(s)")
        raise SharedStorageError(failing)
