"""Fan-out of one logical notification to every device of a user."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from catalog_pipeline.services.clients.push_client import (
    NETWORK_ERROR,
    PushMessage,
    PushProvider,
    SendResult,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchReport:
    results: list[SendResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def invalid_tokens(self) -> list[str]:
        """Tokens the provider confirmed as permanently unreachable."""
        return [result.token for result in self.results if result.permanently_invalid]


class NotificationDispatcher:
    """Builds one provider message per token and sends them as a batch.

    The dispatcher reports outcomes only. Removing dead tokens is left to the
    caller, which owns the user record.
    """

    def __init__(self, provider: PushProvider) -> None:
        self.provider = provider

    async def send(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Mapping[str, str],
        *,
        channel_id: str = "notifications",
        badge: int = 1,
    ) -> DispatchReport:
        if not tokens:
            return DispatchReport()

        messages = [
            PushMessage(
                token=token,
                title=title,
                body=body,
                data={key: str(value) for key, value in data.items()},
                channel_id=channel_id,
                badge=badge,
            )
            for token in tokens
        ]

        try:
            results = await self.provider.send_each(messages)
        except Exception as exc:
            # A provider-level failure says nothing about individual tokens.
            logger.error("Push batch failed: %s", exc, exc_info=True)
            results = [
                SendResult(token=token, success=False, error_code=NETWORK_ERROR)
                for token in tokens
            ]

        report = DispatchReport(results=results)
        for result in report.results:
            if not result.success:
                logger.warning(
                    "Push delivery failed",
                    extra={
                        "error_code": result.error_code,
                        "permanently_invalid": result.permanently_invalid,
                    },
                )
        logger.info(
            "Push batch sent: %d succeeded, %d failed",
            report.success_count,
            report.failure_count,
            extra={"channel_id": channel_id, "invalid_tokens": len(report.invalid_tokens)},
        )
        return report
