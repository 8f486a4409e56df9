from chatbridge.services.canonical import CanonicalMessage, Platform, RoutingOutcome, TargetResult
from chatbridge.services.errors import (
    ConflictError,
    NotConfiguredError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from chatbridge.services.result import Result
