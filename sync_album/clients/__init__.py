"""Network clients – source-side HTTP transport and the Immich asset store."""

from .immich import DEVICE_ID, ImmichClient, ImmichError
from .transport import HttpTransport

__all__ = ["DEVICE_ID", "HttpTransport", "ImmichClient", "ImmichError"]
