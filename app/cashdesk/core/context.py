from dataclasses import dataclass


TRACE_HEADER = "X-Trace-ID"


@dataclass(frozen=True)
class RequestContext:
    """Who is acting on which establishment, as read from the bearer token."""

    trace_id: str
    actor_id: str | None = None
    establishment_id: str | None = None
    role: str | None = None


ANONYMOUS = RequestContext(trace_id="")
