from __future__ import annotations

from mdgate.models.conversion import ConversionDocument, ConversionResult
from mdgate.models.gateway import (
    CacheStatus,
    ConversionFailure,
    Converted,
    ConverterInfo,
    LookupResult,
    LookupStatus,
    PipelineOutcome,
    RequestContext,
    Resolution,
    SuspectHtmlOutput,
    Trigger,
    UpstreamFailure,
)
from mdgate.models.store import StoredObject

__all__ = [
    # gateway
    "RequestContext",
    "Trigger",
    "Resolution",
    "LookupStatus",
    "LookupResult",
    "CacheStatus",
    "ConverterInfo",
    "Converted",
    "SuspectHtmlOutput",
    "UpstreamFailure",
    "ConversionFailure",
    "PipelineOutcome",
    # conversion
    "ConversionDocument",
    "ConversionResult",
    # store
    "StoredObject",
]
