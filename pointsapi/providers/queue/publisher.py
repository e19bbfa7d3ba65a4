"""
포인트 이벤트 발행기

원장 커밋 이후에 호출되며, 발행 실패는 호출자(PointService)가 로그만 남기고 무시합니다.
"""

import logging
from abc import ABC, abstractmethod

from pointsapi.providers.queue.events import PointsEvent
from pointsapi.providers.queue.sqs import SQSClient

logger = logging.getLogger(__name__)


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, topic: str, event: PointsEvent) -> None:
        ...


class LoggingEventPublisher(EventPublisher):
    """이벤트를 로그로만 남기는 기본 발행기 (로컬/테스트)"""

    def publish(self, topic: str, event: PointsEvent) -> None:
        logger.info(f"[{topic}] {event.model_dump_json()}")


class SqsEventPublisher(EventPublisher):
    def __init__(self, client: SQSClient, queue_name: str):
        self.client = client
        self.queue_name = queue_name

    def publish(self, topic: str, event: PointsEvent) -> None:
        self.client.send_message(
            self.queue_name,
            {"topic": topic, "event": event.model_dump(mode="json")},
            attributes={"topic": topic},
        )


def build_event_publisher(settings) -> EventPublisher:
    """Settings.EVENT_PUBLISHER 값("log" | "sqs")에 따라 발행기 선택"""
    kind = (settings.EVENT_PUBLISHER or "log").lower()
    if kind == "sqs":
        if not settings.SQS_POINTS_EVENTS_QUEUE:
            raise ValueError("SQS_POINTS_EVENTS_QUEUE must be set when EVENT_PUBLISHER=sqs")
        return SqsEventPublisher(SQSClient(settings), settings.SQS_POINTS_EVENTS_QUEUE)
    if kind != "log":
        raise ValueError(f"Unknown EVENT_PUBLISHER: {settings.EVENT_PUBLISHER}")
    return LoggingEventPublisher()
