"""Opera - OSINT research pipeline

Simple CLI that runs one research cycle for a throwaway project.
"""

import argparse
import asyncio
import sys

from opera.config import settings
from opera.models.events import SSEEvent
from opera.models.project import ItemType, ProjectItem
from opera.services.pipeline import build_pipeline


class PrintSink:
    """Prints pipeline events as they happen."""

    def emit(self, event: SSEEvent) -> None:
        event_type = event.event.value
        data = event.data

        if event_type == "research:cycle_started":
            print(f"\n[*] Research cycle #{data['cycle']['cycleNumber']} started")

        elif event_type == "research:query_generation_complete":
            print(f"[~] Generated {data.get('queryCount')} queries")

        elif event_type == "research:searching":
            print(
                f"  [+] {data.get('query', '')[:80]}: "
                f"{data.get('resultsFound')} results ({data.get('totalSources')} sources)"
            )

        elif event_type == "research:extraction_complete":
            print(f"\n[+] Extracted {data.get('findingCount')} findings")

        elif event_type == "research:cycle_complete":
            print(f"\n[*] Research Complete!")
            print(f"   Sources: {data.get('sourcesFound')}")
            print(f"   Queued for review: {data.get('findingsQueued')}")
            if data.get("message"):
                print(f"   {data['message']}")

        elif event_type == "research:cycle_failed":
            print(f"\n[!] Error: {data.get('error', 'Unknown error')}")


def parse_item(value: str) -> ProjectItem:
    kind, sep, name = value.partition(":")
    if not sep:
        kind, name = "keyword", value
    try:
        return ProjectItem(name=name, type=ItemType(kind.strip().lower()))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid item {value!r}: expected type:name") from e


async def run_research(items: list[ProjectItem], strategy: str | None = None):
    """Run one research cycle over the given items."""
    config = settings.model_copy(update={"query_strategy": strategy}) if strategy else settings
    pipeline = build_pipeline(config, sink=PrintSink())
    project = pipeline.store.create_project("cli", created_by="cli")
    for item in items:
        await pipeline.store.add_item(project.id, item)

    print(f"Items: {', '.join(f'{i.type.value}:{i.name}' for i in items)}")
    print("-" * 50)

    cycle = await pipeline.cycles.run_cycle(project.id, user_id="cli")

    pending = pipeline.review_queue.pending(project.id)
    if pending:
        print(f"\n{'='*50}")
        print("PENDING REVIEW:")
        print(f"{'='*50}")
        for i, review in enumerate(pending, 1):
            print(f"  {i}. [{review.finding_type.value}] {review.name} ({review.confidence}/10)")
            print(f"     {review.source_url}")

    await pipeline.job_queue.shutdown()
    return 0 if cycle.status.value == "completed" else 1


def main():
    parser = argparse.ArgumentParser(description="Opera OSINT research pipeline")
    parser.add_argument(
        "--item",
        "-i",
        action="append",
        required=True,
        type=parse_item,
        help="Project item as type:name (entity, organization, location, keyword); repeatable",
    )
    parser.add_argument("--strategy", "-s", choices=["pairwise", "smart"], help="Query strategy")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_research(args.item, args.strategy)))


if __name__ == "__main__":
    main()
