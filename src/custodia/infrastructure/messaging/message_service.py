from __future__ import annotations

from custodia.core.errors import MessageDispatchError, RemoteFetchError
from custodia.core.ids import new_uuid
from custodia.core.time import now_utc_iso
from custodia.infrastructure.http.transport import HttpTransport, TransportResponse


class MessageService:
    def __init__(
        self,
        transport: HttpTransport,
        *,
        connector_id: str,
        log_endpoint: str | None = None,
    ) -> None:
        self.transport = transport
        self.connector_id = connector_id
        self.log_endpoint = log_endpoint

    def send_log_message(self) -> TransportResponse | None:
        if not self.log_endpoint:
            return None
        return self._dispatch(self.log_endpoint, self._message("LogMessage"))

    def send_notification_message(self, recipient: str | None) -> TransportResponse:
        payload = self._message("NotificationMessage")
        payload["recipient_connector"] = recipient
        return self._dispatch(recipient, payload)

    def _dispatch(self, url: str | None, payload: dict[str, object]) -> TransportResponse:
        try:
            return self.transport.post_json(url, payload)
        except RemoteFetchError as exc:
            raise MessageDispatchError(f"{payload['type']} could not be sent: {exc}") from exc

    def _message(self, message_type: str) -> dict[str, object]:
        return {
            "type": message_type,
            "id": new_uuid(),
            "issued": now_utc_iso(),
            "issuer_connector": self.connector_id,
        }
