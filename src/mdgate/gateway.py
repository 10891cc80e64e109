"""Markdown serving for triggered requests: lookup, convert, persist, respond."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from mdgate import responses
from mdgate.models.gateway import (
    ConversionFailure,
    Converted,
    LookupStatus,
    SuspectHtmlOutput,
    UpstreamFailure,
)
from mdgate.pipeline import StageTimings
from mdgate.routing import resolve

if TYPE_CHECKING:
    from starlette.responses import Response

    from mdgate.models.gateway import RequestContext, Trigger
    from mdgate.state import AppState

log = structlog.get_logger()


async def serve_markdown(state: AppState, ctx: RequestContext, trigger: Trigger) -> Response:
    resolution = resolve(ctx.url, ctx.path, trigger)
    structlog.contextvars.bind_contextvars(cache_key=resolution.key)
    log.info("conversion_triggered", target=resolution.target, reason=trigger.value)

    timings = StageTimings()
    with timings.measure("lookup"):
        lookup = await state.cache.lookup(resolution.key, refresh=ctx.refresh)

    if lookup.status is LookupStatus.HIT and lookup.content is not None:
        return responses.cache_hit(
            ctx, resolution, lookup.content, trigger=trigger, timings=timings
        )

    outcome = await state.pipeline.run(ctx, resolution, timings)

    if isinstance(outcome, UpstreamFailure):
        return responses.upstream_failure(
            ctx, resolution, outcome, trigger=trigger, timings=timings
        )

    if isinstance(outcome, ConversionFailure):
        return responses.conversion_failure(
            ctx, resolution, outcome, trigger=trigger, timings=timings
        )

    if isinstance(outcome, SuspectHtmlOutput):
        with timings.measure("store"):
            cache_status = await state.cache.quarantine(
                resolution.key,
                outcome.payload,
                source=resolution.target,
                request_id=ctx.request_id,
            )
        return responses.quarantined(
            ctx, resolution, outcome.payload, cache_status, trigger=trigger, timings=timings
        )

    if isinstance(outcome, Converted):
        with timings.measure("store"):
            cache_status = await state.cache.store_markdown(
                resolution.key,
                outcome.markdown,
                source=resolution.target,
                request_id=ctx.request_id,
                converter=outcome.converter,
                final_url=outcome.final_url,
            )
        log.info("conversion_complete", cache_status=cache_status.value, **timings.as_dict())
        return responses.converted(
            ctx,
            resolution,
            outcome.markdown,
            cache_status,
            trigger=trigger,
            timings=timings,
            converter=outcome.converter,
        )

    raise TypeError(f"Unexpected pipeline outcome: {outcome!r}")
