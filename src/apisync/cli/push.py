"""Push commands for the apisync CLI.

Commands:
- push-queue: Process the push queue of one or all mappings
- requeue: Queue every mapped entity of a mapping for a re-push
- push-unmapped: Push entities that were never linked to a remote record
"""

from __future__ import annotations

import click

from apisync.cli.config import open_service, select_mappings


@click.command("push-queue")
@click.argument("name", required=False)
def push_queue(name: str | None) -> None:
    """Process the push queue of mapping NAME, or of every push mapping."""
    service = open_service()
    try:
        mappings = select_mappings(service, name, "push")
        service.push_queue.garbage_collection()
        for mapping in mappings:
            count = service.push_queue.process_queue(mapping)
            click.echo(f"{mapping.id}: processed {count} items")
    finally:
        service.close()


@click.command()
@click.argument("name")
@click.option("--ids", default="", help="Only requeue these entity ids (comma-delimited).")
def requeue(name: str, ids: str) -> None:
    """Queue the mapped entities of mapping NAME for push.

    Pending queue items are replaced. The queue is not processed; run
    'apisync push-queue' afterwards.
    """
    service = open_service()
    try:
        wanted = {entity_id.strip() for entity_id in ids.split(",") if entity_id.strip()}
        for mapping in select_mappings(service, name, "push"):
            entries = [
                (mapped_object.entity_id, mapped_object.id)
                for mapped_object in service.mapped_objects.load_by_mapping(mapping.id)
                if mapped_object.entity_id is not None
                and (not wanted or mapped_object.entity_id in wanted)
            ]
            count = service.push_queue.requeue(mapping.id, entries)
            click.echo(f"{mapping.id}: requeued {count} entities")
    finally:
        service.close()


@click.command("push-unmapped")
@click.argument("name")
@click.option("--count", default=50, show_default=True, help="Number of entities to push.")
def push_unmapped(name: str, count: int) -> None:
    """Push entities of mapping NAME that have no mapped object yet."""
    from apisync.core.types import PushOp

    service = open_service()
    try:
        for mapping in select_mappings(service, name, "push"):
            properties = {"bundle": mapping.bundle} if mapping.bundle else {}
            candidates = service.entities.load_by_properties(mapping.entity_type, properties)
            pushed = []
            for entity in candidates:
                if len(pushed) >= count:
                    break
                if service.mapped_objects.load_by_entity_and_mapping(
                    mapping.entity_type, entity.id, mapping.id
                ):
                    continue
                service.push_trigger.handle(entity, PushOp.CREATE)
                pushed.append(str(entity.id))
            click.echo(f"{mapping.id}: pushed {len(pushed)} unmapped entities {', '.join(pushed)}")
    finally:
        service.close()
