"""Slack notification helpers for the video pipeline."""

import logging
from typing import Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from ezanim.config import SLACK_BOT_TOKEN, SLACK_CHANNEL_ID

logger = logging.getLogger(__name__)


class PipelineNotifier:
    """Sends Slack notifications for video pipeline events.

    Without a bot token every notification is logged instead of sent.
    Delivery failures are logged and never raised.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        channel_id: Optional[str] = None,
        client: Optional[AsyncWebClient] = None,
    ):
        self.bot_token = bot_token or SLACK_BOT_TOKEN
        self.channel_id = channel_id or SLACK_CHANNEL_ID
        self._client = client

    @property
    def client(self) -> Optional[AsyncWebClient]:
        if self._client is None and self.bot_token:
            self._client = AsyncWebClient(token=self.bot_token)
        return self._client

    async def send_message(self, text: str, channel_id: Optional[str] = None) -> dict:
        """Send a message to a Slack channel.

        Args:
            text: Message text (supports Slack markdown)
            channel_id: Channel to send to (uses default if not specified)

        Returns:
            Slack API response dict
        """
        if self.client is None:
            logger.info("[SLACK] %s", text)
            return {"ok": False, "error": "No Slack client configured"}

        try:
            response = await self.client.chat_postMessage(
                channel=channel_id or self.channel_id,
                text=text,
            )
            return {"ok": response["ok"], "ts": response["ts"], "channel": response["channel"]}
        except SlackApiError as e:
            logger.warning("Slack notification failed: %s", e.response.get("error", e))
            return {"ok": False, "error": str(e)}
        except Exception as e:
            logger.warning("Slack notification failed: %s", e)
            return {"ok": False, "error": str(e)}

    # ==================== PIPELINE NOTIFICATIONS ====================

    async def notify_preview_ready(self, request) -> dict:
        return await self.send_message(
            f"\U0001f440 *Preview Ready*\n\n"
            f"\U0001f4dd {request.user_prompt}\n"
            f"⏱️ {request.duration:.1f}s, {request.aspect_ratio}\n"
            f"\U0001f194 `{request.id}`\n\n"
            f"Quality review is running now."
        )

    async def notify_qa_completed(self, request, approved: bool, iterations: int) -> dict:
        verdict = "approved" if approved else "best effort after max loops"
        return await self.send_message(
            f"✅ *Quality Review Finished*\n\n"
            f"\U0001f4dd {request.user_prompt}\n"
            f"\U0001f501 {iterations} iteration(s), {verdict}\n"
            f"\U0001f194 `{request.id}`"
        )

    async def notify_completed(self, request, video) -> dict:
        return await self.send_message(
            f"\U0001f3ac *Video Ready!*\n\n"
            f"\U0001f4dd {request.user_prompt}\n"
            f"\U0001f4d0 {video.width}x{video.height} @ {video.fps}fps, {video.duration:.1f}s\n"
            f"\U0001f517 {video.url}"
        )

    async def notify_failed(self, request_id: str, stage: str, error: str) -> dict:
        return await self.send_message(
            f"❌ *Video Pipeline Failed*\n\n"
            f"\U0001f194 `{request_id}`\n"
            f"\U0001f6a7 Stage: {stage}\n"
            f"\U0001f4ac {error[:500]}"
        )
