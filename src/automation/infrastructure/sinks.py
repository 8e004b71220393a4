"""Alert and actuator command sinks."""

import httpx
from loguru import logger

from src.automation.domain.exceptions import SinkRejectedError, SinkUnavailableError
from src.automation.domain.models import ActuatorCommandRequest, AlertRequest


class InMemoryAlertSink:
    """Simple in-memory alert storage for testing and local runs."""

    def __init__(self):
        self.alerts: list[AlertRequest] = []
        self._read = 0

    async def send_alert(self, request: AlertRequest) -> None:
        """Store an alert."""
        self.alerts.append(request)

    @property
    def unread_count(self) -> int:
        return len(self.alerts) - self._read

    def mark_all_read(self) -> None:
        self._read = len(self.alerts)

    def clear(self):
        """Clear all stored alerts."""
        self.alerts.clear()
        self._read = 0

    def __len__(self):
        return len(self.alerts)


class InMemoryActuatorSink:
    """Simple in-memory actuator command storage for testing and local runs."""

    def __init__(self):
        self.commands: list[ActuatorCommandRequest] = []

    async def send_command(self, request: ActuatorCommandRequest) -> None:
        """Store a command."""
        self.commands.append(request)

    def clear(self):
        """Clear all stored commands."""
        self.commands.clear()

    def __len__(self):
        return len(self.commands)


class _HttpSink:
    """Shared POST-and-check logic for HTTP sinks."""

    sink_name = "sink"

    def __init__(
        self,
        base_url: str,
        path: str,
        api_key: str | None = None,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize HTTP sink.

        Args:
            base_url: Service base URL
            path: Path payloads are POSTed to
            api_key: Optional bearer token
            timeout_seconds: Transport-level timeout (the dispatcher applies its own on top)
            client: Pre-built client, mostly for tests
        """
        self.path = path
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout_seconds)

    async def _post(self, payload: dict) -> None:
        try:
            response = await self._client.post(self.path, json=payload)
        except httpx.TimeoutException as e:
            raise SinkUnavailableError(f"{self.sink_name} timed out", original_error=e) from e
        except httpx.TransportError as e:
            raise SinkUnavailableError(f"{self.sink_name} unreachable: {e}", original_error=e) from e

        if response.is_server_error:
            raise SinkUnavailableError(f"{self.sink_name} returned {response.status_code}")
        if response.is_client_error:
            raise SinkRejectedError(
                f"{self.sink_name} rejected request with {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )
        logger.debug(f"{self.sink_name} accepted request ({response.status_code})")

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpAlertSink(_HttpSink):
    """Alert sink POSTing alerts to the backend alert service."""

    sink_name = "alert service"

    def __init__(self, base_url: str, path: str = "/alerts", **kwargs):
        super().__init__(base_url, path, **kwargs)

    async def send_alert(self, request: AlertRequest) -> None:
        await self._post(request.model_dump(mode="json"))


class HttpActuatorSink(_HttpSink):
    """Actuator sink POSTing commands to the device gateway."""

    sink_name = "actuator gateway"

    def __init__(self, base_url: str, path: str = "/commands", **kwargs):
        super().__init__(base_url, path, **kwargs)

    async def send_command(self, request: ActuatorCommandRequest) -> None:
        await self._post(request.model_dump(mode="json"))
