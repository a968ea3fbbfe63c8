"""
Exporter error types
"""


class ExporterError(Exception):
    """Base class for exporter errors"""


class ExporterNotInitialized(ExporterError):
    """Raised when metrics are requested before a successful init"""

    def __init__(self, message: str = "metrics exporter is not initialized"):
        super().__init__(message)


class UpstreamHealthError(ExporterError):
    """Raised by a balancer when health of an upstream cannot be read"""
