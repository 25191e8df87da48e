from __future__ import annotations

import logging

from custodia.core.errors import MalformedAddressError, UnsupportedSourceError
from custodia.domain.models.resource import BackendSource, SourceType
from custodia.infrastructure.http.transport import HttpTransport

logger = logging.getLogger(__name__)


class BackendSourceResolver:
    """Fetches representation bytes from remote backends.

    LOCAL sources are served from the stored payload by ``ResourceService`` and are
    rejected here.
    """

    def __init__(self, transport: HttpTransport) -> None:
        self.transport = transport

    def fetch(self, source: BackendSource) -> bytes:
        source_type = source.type
        try:
            if source_type is SourceType.LOCAL:
                raise ValueError("LOCAL sources are served from the stored payload, not fetched")
            if source_type is SourceType.HTTP_GET:
                return self.transport.get_plain(source.url)
            if source_type is SourceType.HTTPS_GET:
                return self.transport.get_tls(source.url)
            if source_type is SourceType.HTTPS_GET_BASICAUTH:
                return self.transport.get_tls_basic_auth(source.url, source.username, source.password)
        except MalformedAddressError:
            logger.error("Backend address is not a usable URL: %r", source.url)
            raise

        # Reached only when SourceType gains a member this method does not handle.
        logger.error("No fetch strategy for backend source type %r", source_type)
        raise UnsupportedSourceError(f"Backend source type is not supported: {source_type!r}")
