# media_rename/preview.py
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .collision_detector import detect_collisions
from .models import MediaEntity, RenamePlan, PreviewRecord, PreviewFileGroup
from .renamer_engine import RenamerEngine

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, MediaEntity], None]


@dataclass
class PreviewScan:
    plans: List[RenamePlan] = field(default_factory=list)
    cancelled: bool = False


def scan_entities(
    entities: Iterable[MediaEntity],
    engine: RenamerEngine,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> PreviewScan:
    """
    Plans every entity, then runs collision detection over the planned batch.
    Cancellation is only looked at between two entities, so every returned plan is complete.
    """
    entity_list = list(entities)
    scan = PreviewScan()
    for index, entity in enumerate(entity_list, start=1):
        if cancel_event is not None and cancel_event.is_set():
            log.info(f"Preview cancelled after {index - 1} of {len(entity_list)} entities.")
            scan.cancelled = True
            break
        scan.plans.append(engine.plan_rename(entity))
        if progress_callback: progress_callback(index, len(entity_list), entity)
    detect_collisions(scan.plans)
    return scan


def build_record(plan: RenamePlan) -> PreviewRecord:
    groups = [
        PreviewFileGroup(
            file_type=entry.file_type,
            old_names=sorted(entry.old_relative_paths),
            new_names=sorted(entry.new_relative_paths),
            duplicate=entry.duplicate,
        )
        for entry in plan.entries
    ]
    return PreviewRecord(
        plan=plan,
        old_path=plan.old_path,
        new_path=plan.new_path,
        groups=groups,
        needs_rename=plan.needs_rename,
    )


def build_records(plans: Iterable[RenamePlan]) -> List[PreviewRecord]:
    """Only actionable rows: plans without any change and without problems are left out."""
    records = [build_record(plan) for plan in plans]
    return [r for r in records if r.needs_rename]


def generate_previews(
    entities: Iterable[MediaEntity],
    engine: RenamerEngine,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> List[PreviewRecord]:
    scan = scan_entities(entities, engine, cancel_event, progress_callback)
    return build_records(scan.plans)


async def generate_previews_async(
    entities: Iterable[MediaEntity],
    engine: RenamerEngine,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> List[PreviewRecord]:
    return await asyncio.to_thread(generate_previews, list(entities), engine, cancel_event, progress_callback)
