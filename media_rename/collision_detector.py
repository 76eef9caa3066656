# media_rename/collision_detector.py
import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from .models import RenamePlan
from .utils import normalize_path_key

log = logging.getLogger(__name__)

def group_by_destination(plans: Iterable[RenamePlan]) -> Dict[str, List[RenamePlan]]:
    groups: Dict[str, List[RenamePlan]] = defaultdict(list)
    for plan in plans:
        groups[normalize_path_key(plan.collision_target)].append(plan)
    return dict(groups)

def detect_collisions(plans: Iterable[RenamePlan]) -> Dict[str, List[RenamePlan]]:
    """
    Flags every plan that shares its destination with another plan of the batch and
    returns the colliding groups keyed by normalized destination. Only flags; it never
    picks a winner or rewrites a destination.
    """
    collisions = {key: members for key, members in group_by_destination(plans).items() if len(members) > 1}
    for key, members in collisions.items():
        names = ", ".join(f"'{p.entity.display_name}'" for p in members)
        log.warning(f"Destination collision on '{members[0].collision_target}': {names}")
        for plan in members:
            others = [p.entity.display_name for p in members if p is not plan]
            plan.flag_problem(f"Destination '{plan.collision_target}' is also the destination of: {', '.join(others)}")
    return collisions
