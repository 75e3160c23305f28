"""
Stream Chat Server Client

Server-side REST client for the Stream Chat API.
No agent logic. No retries.

Authentication:
  Every request carries a server JWT (HS256, {"server": true}) signed with
  STREAM_API_SECRET, plus the api_key query parameter.
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx
import jwt

from transport.base import ChatTransportError
from transport.schemas import AI_INDICATOR_UPDATE, AIState, OutboundMessage

logger = logging.getLogger(__name__)


class StreamChatError(ChatTransportError):
    """Stream Chat API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def split_cid(cid: str) -> tuple:
    """"messaging:abc" -> ("messaging", "abc")."""
    channel_type, _, channel_id = cid.partition(":")
    if not channel_id:
        raise ValueError(f"Invalid channel cid: {cid!r}")
    return channel_type, channel_id


class StreamChatClient:
    """
    Thin async wrapper over the Stream Chat REST API.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://chat.stream-io-api.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key:    Stream application key
            api_secret: Stream application secret (signs every token)
            base_url:   API host
            timeout:    Per-request timeout in seconds
            transport:  httpx transport override (unit tests use httpx.MockTransport)
        """
        if not api_key or not api_secret:
            raise ValueError("STREAM_API_KEY and STREAM_API_SECRET must be set")

        self.api_key = api_key
        self._api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._server_token = jwt.encode({"server": True}, api_secret, algorithm="HS256")

    # ── Tokens ────────────────────────────────────────────────

    def create_token(self, user_id: str, exp: Optional[int] = None, iat: Optional[int] = None) -> str:
        """Sign a client token for a chat user."""
        payload: Dict[str, Any] = {"user_id": user_id}
        if exp is not None:
            payload["exp"] = exp
        if iat is not None:
            payload["iat"] = iat
        return jwt.encode(payload, self._api_secret, algorithm="HS256")

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        """Check the X-Signature header of a webhook delivery."""
        expected = hmac.new(self._api_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    # ── Users & channels ──────────────────────────────────────

    async def upsert_user(self, user_id: str, name: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
        user = {"id": user_id, **fields}
        if name:
            user["name"] = name
        return await self._request("POST", "/users", json={"users": {user_id: user}})

    async def delete_user(self, user_id: str, hard_delete: bool = True) -> Dict[str, Any]:
        params = {"hard_delete": "true"} if hard_delete else {}
        return await self._request("DELETE", f"/users/{user_id}", params=params)

    async def add_members(self, channel_type: str, channel_id: str, user_ids: List[str]) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/channels/{channel_type}/{channel_id}", json={"add_members": user_ids}
        )

    # ── Messages & events ─────────────────────────────────────

    async def send_message(
        self,
        channel_type: str,
        channel_id: str,
        user_id: str,
        text: str,
        ai_generated: bool = False,
    ) -> OutboundMessage:
        body = {
            "message": {"text": text, "user_id": user_id, "ai_generated": ai_generated},
        }
        data = await self._request("POST", f"/channels/{channel_type}/{channel_id}/message", json=body)
        message = data.get("message") or {}
        if not message.get("id"):
            raise StreamChatError("Stream did not return a message id")
        return OutboundMessage(
            id=message["id"],
            cid=message.get("cid") or f"{channel_type}:{channel_id}",
            text=message.get("text") or "",
        )

    async def update_message_partial(self, message_id: str, user_id: str, set_fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/messages/{message_id}", json={"set": set_fields, "user_id": user_id}
        )

    async def send_event(
        self,
        channel_type: str,
        channel_id: str,
        user_id: str,
        event: Dict[str, Any],
    ) -> Dict[str, Any]:
        body = {"event": {**event, "user_id": user_id}}
        return await self._request("POST", f"/channels/{channel_type}/{channel_id}/event", json=body)

    async def send_ai_indicator(self, message: OutboundMessage, user_id: str, state: AIState) -> Dict[str, Any]:
        channel_type, channel_id = split_cid(message.cid)
        return await self.send_event(
            channel_type,
            channel_id,
            user_id,
            {
                "type": AI_INDICATOR_UPDATE,
                "ai_state": state.value,
                "cid": message.cid,
                "message_id": message.id,
            },
        )

    # ── Plumbing ──────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Authorization": self._server_token,
                    "stream-auth-type": "jwt",
                    "Content-Type": "application/json",
                },
            )
        return self._http

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        params = dict(kwargs.pop("params", None) or {})
        params["api_key"] = self.api_key

        try:
            response = await self._client().request(method, path, params=params, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Stream request {method} {path} failed: {e}")
            raise StreamChatError(f"HTTP request failed: {e}") from e

        if response.status_code >= 300:
            logger.error(f"Stream API error: {response.status_code} - {response.text}")
            raise StreamChatError(
                f"Stream API returned {response.status_code}", status_code=response.status_code
            )

        if not response.content:
            return {}
        return response.json()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
