# backend/services/avatar_proxy.py
"""
Talking-Avatar Stream Proxy (HTTP variant)

Forwards WebRTC stream setup and talk commands to the avatar platform
(D-ID) with the server-held key, so the browser never sees it.

Actions:
- create:  open a stream, returns the SDP offer and ICE servers
- sdp:     send the browser's SDP answer
- ice:     send an ICE candidate (upstream failures are only logged)
- talk:    make the avatar speak text or pre-rendered audio
- destroy: close the stream (upstream failures are only logged)

A 402 from the platform (out of credits) is returned as
``{"insufficient_credits": true}`` so the browser can fall back to
audio-only instead of failing the interview.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from errors import AppError, InputInvalid

logger = logging.getLogger(__name__)

INSUFFICIENT_CREDITS = {
    "insufficient_credits": True,
    "error": "Avatar service is out of credits. Continuing with audio only.",
}


class AvatarPlatformError(AppError):
    """Non-2xx response from the avatar platform."""


class DidStreamProxy:
    """
    Proxy for the avatar platform's streaming REST API.

    Attributes:
        api_key: Basic-auth key for the platform
        base_url: Platform API root
        default_avatar_url: Presenter image used when no usable custom one is given
        http: httpx client (injectable for tests)
    """

    DRIVER_URL = "bank://lively/driver-06"
    VOICE_PROVIDER = {
        "type": "microsoft",
        "voice_id": "en-US-JennyNeural",
        "voice_config": {"style": "friendly", "rate": "1.0"},
    }
    # Images in our own storage bucket aren't reachable by the platform
    UNTRUSTED_AVATAR_HOSTS = ("supabase.co/storage",)

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_avatar_url: str,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_avatar_url = default_avatar_url
        self.http = http_client or httpx.Client()

    def close(self) -> None:
        self.http.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json",
        }

    def avatar_url(self, custom_url: Optional[str]) -> str:
        if custom_url and not any(host in custom_url for host in self.UNTRUSTED_AVATAR_HOSTS):
            logger.info("Using custom avatar URL")
            return custom_url
        return self.default_avatar_url

    def handle(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(
            "Avatar action: %s, streamId: %s", action, payload.get("streamId")
        )
        if action == "create":
            return self.create(payload.get("avatarUrl"))
        if action == "sdp":
            return self.sdp(payload.get("streamId"), payload.get("sessionId"), payload.get("sdpAnswer"))
        if action == "ice":
            return self.ice(payload.get("streamId"), payload.get("sessionId"), payload.get("iceCandidate"))
        if action == "talk":
            return self.talk(
                payload.get("streamId"), payload.get("sessionId"),
                text=payload.get("text"), audio=payload.get("audio"),
            )
        if action == "destroy":
            return self.destroy(payload.get("streamId"), payload.get("sessionId"))
        raise InputInvalid(f"Unknown action: {action}")

    def create(self, avatar_url: Optional[str] = None) -> Dict[str, Any]:
        response = self.http.post(
            f"{self.base_url}/talks/streams",
            headers=self._headers(),
            json={
                "source_url": self.avatar_url(avatar_url),
                "driver_url": self.DRIVER_URL,
                "stream_warmup": True,
                "config": {"stitch": True, "fluent": True, "pad_audio": 0.0},
            },
        )
        if response.status_code == 402:
            logger.warning("Avatar platform out of credits on create")
            return dict(INSUFFICIENT_CREDITS)
        if response.status_code >= 400:
            logger.error("Avatar create error: %s %s", response.status_code, response.text)
            raise AvatarPlatformError(
                f"Failed to create D-ID stream: {response.status_code} - {response.text}"
            )

        data = response.json()
        if not data.get("session_id"):
            logger.error("Avatar platform returned no session_id")
            raise AvatarPlatformError("D-ID did not return a session_id")

        logger.info("Avatar stream created: %s", data.get("id"))
        return {
            "streamId": data.get("id"),
            "sdpOffer": data.get("offer"),
            "iceServers": data.get("ice_servers"),
            "sessionId": data["session_id"],
        }

    def sdp(self, stream_id: Optional[str], session_id: Optional[str], sdp_answer: Any) -> Dict[str, Any]:
        if not stream_id or not session_id or not sdp_answer:
            raise InputInvalid("streamId, sessionId, and sdpAnswer required for SDP action")

        response = self.http.post(
            f"{self.base_url}/talks/streams/{stream_id}/sdp",
            headers=self._headers(),
            json={"answer": sdp_answer, "session_id": session_id},
        )
        if response.status_code >= 400:
            logger.error("Avatar SDP error: %s %s", response.status_code, response.text)
            raise AvatarPlatformError(f"Failed to send SDP answer: {response.status_code}")
        return {"success": True}

    def ice(self, stream_id: Optional[str], session_id: Optional[str], candidate: Any) -> Dict[str, Any]:
        if not stream_id or not session_id or not candidate:
            raise InputInvalid("streamId, sessionId, and iceCandidate required for ICE action")
        if not isinstance(candidate, dict):
            raise InputInvalid("iceCandidate must be an object")

        response = self.http.post(
            f"{self.base_url}/talks/streams/{stream_id}/ice",
            headers=self._headers(),
            json={
                "candidate": candidate.get("candidate"),
                "sdpMid": candidate.get("sdpMid"),
                "sdpMLineIndex": candidate.get("sdpMLineIndex"),
                "session_id": session_id,
            },
        )
        if response.status_code >= 400:
            logger.error("Avatar ICE error: %s %s", response.status_code, response.text)
        return {"success": True}

    def talk(
        self,
        stream_id: Optional[str],
        session_id: Optional[str],
        text: Optional[str] = None,
        audio: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Args:
            text: Sentence for the platform's TTS voice
            audio: Base64 MP3 to lip-sync instead (used when text is empty)
        """
        if not stream_id or not session_id:
            raise InputInvalid("streamId and sessionId required for talk action")
        if not text and not audio:
            raise InputInvalid("Either text or audio is required for talk action")

        if text:
            script = {"type": "text", "input": text, "provider": self.VOICE_PROVIDER}
        else:
            script = {"type": "audio", "audio_url": f"data:audio/mp3;base64,{audio}"}

        logger.info("Sending talk command, text length: %d", len(text or ""))
        response = self.http.post(
            f"{self.base_url}/talks/streams/{stream_id}",
            headers=self._headers(),
            json={
                "script": script,
                "driver_url": self.DRIVER_URL,
                "config": {"stitch": True, "fluent": True},
                "session_id": session_id,
            },
        )
        if response.status_code == 402:
            logger.warning("Avatar platform out of credits on talk")
            return dict(INSUFFICIENT_CREDITS)
        if response.status_code >= 400:
            logger.error("Avatar talk error: %s %s", response.status_code, response.text)
            raise AvatarPlatformError(f"Failed to send talk: {response.status_code}")

        return {"success": True, "talkId": response.json().get("id")}

    def destroy(self, stream_id: Optional[str], session_id: Optional[str] = None) -> Dict[str, Any]:
        if not stream_id:
            raise InputInvalid("streamId required for destroy action")

        body = {"session_id": session_id} if session_id else None
        response = self.http.request(
            "DELETE",
            f"{self.base_url}/talks/streams/{stream_id}",
            headers=self._headers(),
            json=body,
        )
        if response.status_code >= 400:
            logger.error("Avatar destroy error: %s %s", response.status_code, response.text)

        logger.info("Avatar stream destroyed: %s", stream_id)
        return {"success": True}
