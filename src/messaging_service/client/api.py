"""HTTP client for the request/response messaging surface."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID, uuid4

import httpx

from messaging_service.application.exceptions import (
    AppError,
    ForbiddenError,
    NotFoundError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    400: ValidationError,
    403: ForbiddenError,
    404: NotFoundError,
    503: TransientError,
}


class MessagingApiClient:
    """Thin async wrapper over the ``/api`` routes.

    Raises the service's own error taxonomy so callers handle a rejected
    HTTP call the same way as an in-process one. An injected ``http`` client
    must carry its own base URL; ``base_url`` is only used to build the
    default one.
    """

    def __init__(
        self,
        base_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        *,
        timeout: float = 10.0,
    ) -> None:
        if http is None and base_url is None:
            raise ValueError("base_url is required when no http client is given")
        if http is not None and base_url is not None:
            raise ValueError("pass either base_url or an http client, not both")
        self.http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> MessagingApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        request_id = uuid4().hex
        try:
            response = await self.http.request(
                method,
                path,
                params=params,
                json=json,
                headers={"X-Request-ID": request_id},
            )
        except httpx.TimeoutException as exc:
            raise TransientError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"Connection failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_for(response)
        return response.json()

    @staticmethod
    def _error_for(response: httpx.Response) -> AppError:
        try:
            message = response.json().get("message", "")
        except ValueError:
            message = response.text
        logger.debug(
            "API call %s %s failed with %d: %s",
            response.request.method, response.request.url.path, response.status_code, message,
        )
        if response.status_code in _STATUS_ERRORS:
            return _STATUS_ERRORS[response.status_code](message)
        if response.status_code >= 500:
            return TransientError(message or f"Server error {response.status_code}")
        return AppError(message or f"Request failed with {response.status_code}")

    # ---- conversations ----

    async def list_conversations(self, user_id: int) -> list[dict[str, Any]]:
        return await self.call("GET", "/api/conversations", params={"userId": user_id})

    async def get_conversation(self, conversation_id: int) -> dict[str, Any]:
        return await self.call("GET", f"/api/conversations/{conversation_id}")

    async def start_conversation(
        self,
        user_id: int,
        receiver_id: int,
        property_id: int,
        message: str,
        *,
        client_msg_id: UUID | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "userId": user_id,
            "receiverId": receiver_id,
            "propertyId": property_id,
            "message": message,
        }
        if client_msg_id is not None:
            body["clientMsgId"] = str(client_msg_id)
        return await self.call("POST", "/api/conversations", json=body)

    async def send_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        *,
        client_msg_id: UUID | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"senderId": sender_id, "content": content}
        if client_msg_id is not None:
            body["clientMsgId"] = str(client_msg_id)
        return await self.call(
            "POST", f"/api/conversations/{conversation_id}/messages", json=body,
        )

    async def mark_conversation_read(self, conversation_id: int, user_id: int) -> bool:
        data = await self.call(
            "PUT", f"/api/conversations/{conversation_id}/read", json={"userId": user_id},
        )
        return bool(data.get("success"))

    # ---- notifications ----

    async def list_notifications(self, user_id: int) -> list[dict[str, Any]]:
        return await self.call("GET", "/api/notifications", params={"userId": user_id})

    async def mark_notification_read(self, notification_id: int) -> bool:
        data = await self.call("PUT", f"/api/notifications/{notification_id}/read")
        return bool(data.get("success"))

    async def mark_all_notifications_read(self, user_id: int) -> bool:
        data = await self.call("PUT", "/api/notifications/read-all", json={"userId": user_id})
        return bool(data.get("success"))

    async def unread_counts(self, user_id: int) -> dict[str, int]:
        return await self.call("GET", "/api/unread-counts", params={"userId": user_id})
