from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, Optional

import requests

from .config import TrackerSettings
from .errors import DispatchError, SerializationError
from .logger import ProcessLogger

Executor = Callable[[Callable[[], None]], None]


class Dispatcher:
    """Fire-and-forget POST of one envelope per call; at-most-once, no retry."""

    def __init__(
        self,
        settings: TrackerSettings,
        *,
        logger: Optional[ProcessLogger] = None,
        session: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or ProcessLogger()
        self.session = session or requests.Session()
        self.executor = executor or self._default_executor

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-SDK-ID": self.settings.sdk_id,
        }

    def send(self, envelope: Dict[str, Any]) -> None:
        event_type = envelope.get("eventType", "event")
        try:
            body = self._serialize(envelope)
        except SerializationError as exc:
            self.logger.warn("Dispatcher", f"Dropped {event_type}: {exc}")
            return

        def job() -> None:
            try:
                status = self._post(body)
            except DispatchError as exc:
                self.logger.warn("Dispatcher", f"HTTP {event_type} failed: {exc}")
                return
            self.logger.log("Dispatcher", f"{event_type} event HTTP response: {status}")

        self.logger.log(
            "Dispatcher",
            f"Sending {event_type} event seq={envelope.get('sequenceNumber')} "
            f"id={envelope.get('eventId')}",
        )
        try:
            self.executor(job)
        except RuntimeError as exc:
            self.logger.warn("Dispatcher", f"Could not schedule {event_type}: {exc}")

    def _serialize(self, envelope: Dict[str, Any]) -> bytes:
        try:
            return json.dumps(envelope, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc

    def _post(self, body: bytes) -> int:
        try:
            response = self.session.post(
                self.settings.ingest_url,
                params={"sdkId": self.settings.sdk_id},
                headers=self._headers(),
                data=body,
                timeout=self.settings.request_timeout,
                allow_redirects=False,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DispatchError(str(exc)) from exc
        if not 200 <= response.status_code < 300:
            raise DispatchError(f"unexpected status {response.status_code}")
        return response.status_code

    def close(self) -> None:
        self.session.close()

    def _default_executor(self, job: Callable[[], None]) -> None:
        worker = threading.Thread(target=job, daemon=True)
        worker.start()
