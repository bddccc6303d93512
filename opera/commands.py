from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from opera.models.events import SSEEvent
from opera.services import streaming
from opera.services.errors import InvalidReviewId, NoProjectOpen, OperaError
from opera.services.pipeline import Pipeline


@dataclass(slots=True)
class CommandContext:
    """Who sent a command and which project they have open."""

    user_id: str | None = None
    project_id: str | None = None


class CommandHandler:
    """Turns chat commands into pipeline calls.

    Every command emits exactly one acknowledgement: ``chat`` on success,
    ``notif`` with the reason on failure.
    """

    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline

    async def handle(self, ctx: CommandContext, text: str) -> SSEEvent:
        name, _, arg = text.strip().partition(" ")
        name = name.lower()
        arg = arg.strip()
        handler = {
            "/research": self._research,
            "/status": self._status,
            "/review": self._review,
            "/approve": self._approve,
            "/reject": self._reject,
        }.get(name)

        try:
            if handler is None:
                raise OperaError(f"unknown command: {name or text.strip()}")
            message = await handler(ctx, arg)
            ack = streaming.chat(message, project_id=ctx.project_id, user_id=ctx.user_id)
        except OperaError as e:
            logger.info(f"Command {name} rejected for user {ctx.user_id}: {e.user_message}")
            ack = streaming.notif(e.user_message, project_id=ctx.project_id, user_id=ctx.user_id)
        except Exception:
            logger.exception(f"Command {name} failed for user {ctx.user_id}")
            ack = streaming.notif("command failed", project_id=ctx.project_id, user_id=ctx.user_id)

        self.pipeline.sink.emit(ack)
        return ack

    def _project(self, ctx: CommandContext) -> str:
        if not ctx.project_id or self.pipeline.store.get_project(ctx.project_id) is None:
            raise NoProjectOpen()
        return ctx.project_id

    async def _research(self, ctx: CommandContext, arg: str) -> str:
        project_id = self._project(ctx)
        cycle = self.pipeline.cycles.start_cycle(project_id, ctx.user_id)
        return f"research cycle #{cycle.cycle_number} started"

    async def _status(self, ctx: CommandContext, arg: str) -> str:
        project_id = self._project(ctx)
        pending = len(self.pipeline.review_queue.pending(project_id))
        cycle = self.pipeline.cycles.latest_cycle(project_id)
        if cycle is None:
            return f"no research cycles yet, {pending} findings pending review"
        return (
            f"cycle #{cycle.cycle_number}: {cycle.status.value}, "
            f"{cycle.sources_found} sources, {cycle.findings_queued} findings queued, "
            f"{pending} pending review"
        )

    async def _review(self, ctx: CommandContext, arg: str) -> str:
        project_id = self._project(ctx)
        pending = self.pipeline.review_queue.pending(project_id)
        self.pipeline.review_queue.publish(project_id)
        if not pending:
            return "no findings pending review"
        lines = [f"{len(pending)} findings pending review:"]
        for index, review in enumerate(pending, start=1):
            lines.append(f"{index}. [{review.finding_type.value}] {review.name} ({review.confidence}/10)")
        return "\n".join(lines)

    async def _approve(self, ctx: CommandContext, arg: str) -> str:
        project_id = self._project(ctx)
        if not arg:
            raise InvalidReviewId()
        outcome = await self.pipeline.review_queue.approve(project_id, arg, user_id=ctx.user_id)
        review = outcome.review
        message = f"approved {review.finding_type.value}: {review.name}"
        if outcome.job is not None:
            message += ", scraping source for more findings"
        return message

    async def _reject(self, ctx: CommandContext, arg: str) -> str:
        project_id = self._project(ctx)
        if not arg:
            raise InvalidReviewId()
        outcome = await self.pipeline.review_queue.reject(project_id, arg, user_id=ctx.user_id)
        return f"rejected {outcome.review.finding_type.value}: {outcome.review.name}"
