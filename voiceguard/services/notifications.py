"""Pub/sub notifications emitted by the listener pipeline."""

import logging
from pubsub import pub

from ..models.events import DetectionEvent, PartialTranscriptEvent, StatusEvent, UserNotice

logger = logging.getLogger(__name__)

PARTIAL_TOPIC = "voiceguard.partial"
DETECTION_TOPIC = "voiceguard.detection"
STATUS_TOPIC = "voiceguard.status"
NOTICE_TOPIC = "voiceguard.notice"

ALL_TOPICS = (PARTIAL_TOPIC, DETECTION_TOPIC, STATUS_TOPIC, NOTICE_TOPIC)


class ListenerExceptionLogger:
    """pypubsub listener-exception handler that logs and swallows the error.

    Subscribers are UI code; a failing subscriber must never reach the
    listener worker or the alert dispatcher.
    """

    def __call__(self, listenerID: str, topicObj) -> None:
        logger.error(f"Subscriber {listenerID} failed on topic {topicObj.getName()}", exc_info=True)


class NotificationPublisher:
    """Publishes pipeline events using pubsub.pub.

    Every topic carries a single ``event`` argument; subscribers must accept
    it by that name.
    """

    def __init__(self):
        if not isinstance(pub.getListenerExcHandler(), ListenerExceptionLogger):
            pub.setListenerExcHandler(ListenerExceptionLogger())
        logger.info(f"NotificationPublisher initialized with topics: {', '.join(ALL_TOPICS)}")

    def publish_partial(self, event: PartialTranscriptEvent) -> None:
        pub.sendMessage(PARTIAL_TOPIC, event=event)

    def publish_detection(self, event: DetectionEvent) -> None:
        pub.sendMessage(DETECTION_TOPIC, event=event)
        logger.debug(f"Published detection #{event.detection_count}: '{event.text}'")

    def publish_status(self, event: StatusEvent) -> None:
        pub.sendMessage(STATUS_TOPIC, event=event)
        logger.debug(f"Published status: {event.status.value}")

    def publish_notice(self, notice: UserNotice) -> None:
        pub.sendMessage(NOTICE_TOPIC, event=notice)
        logger.debug(f"Published notice: {notice.title}")
