"""Exception taxonomy.

Per-target probe failures are *data* (see :class:`~radar.scanner.models.ProbeOutcome`)
and never show up here.  Everything below :class:`StartupError` aborts the
scan before any work is dispatched.
"""


class RadarError(Exception):
    """Base class for every error raised by the ``radar`` package."""


class StartupError(RadarError):
    """A precondition for running a scan is not met."""


class MissingCredential(StartupError):
    """The bearer credential for the analysis endpoint is absent."""


class SourceUnavailable(StartupError):
    """The DNS record source could not be fetched or parsed."""


class ArtifactWriteError(StartupError):
    """An artifact file could not be written to the output directory."""


class HistoryUnavailable(RadarError):
    """``git log`` history for the zone file could not be produced."""


class AnalysisNetworkFailure(RadarError):
    """The analysis call failed at the transport or credential level."""

    def __init__(self, target: str, message: str) -> None:
        super().__init__(f"{target}: {message}")
        self.target = target
        self.message = message
