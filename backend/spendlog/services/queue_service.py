"""Publishing extraction messages to the queue transport.

``publish`` never raises for transport problems.  It returns a
:class:`PublishResult` and leaves it to the caller to decide what a
failed publish means for the job it belongs to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from dramatiq.errors import DramatiqError
from redis.exceptions import RedisError

from spendlog.models.schemas import QueueMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishResult:
    """Outcome of handing one message to the transport."""

    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DramatiqPublisher:
    """Publishes :class:`QueueMessage` bodies to the extraction actor's queue."""

    def __init__(self, actor: Any = None) -> None:
        self._actor = actor

    @property
    def actor(self) -> Any:
        if self._actor is None:
            # Deferred so that importing this module does not configure the broker
            from spendlog.core.tasks import process_extraction

            self._actor = process_extraction
        return self._actor

    def publish(self, message: QueueMessage) -> PublishResult:
        try:
            sent = self.actor.send(message.to_wire())
        except (DramatiqError, RedisError, OSError) as exc:
            logger.warning("[queue] publish failed job_id=%s err=%s", message.job_id, exc)
            return PublishResult(ok=False, error=str(exc) or exc.__class__.__name__)
        logger.debug("[queue] published job_id=%s message_id=%s", message.job_id, sent.message_id)
        return PublishResult(ok=True, message_id=sent.message_id)
