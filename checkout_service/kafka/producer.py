
import json
from typing import Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from checkout_service.core.errors import EventPublishError

class OrderEventPublisher:
    def __init__(self, bootstrap: str, topic: str):
        self.bootstrap = bootstrap
        self.topic = topic
        self._producer: Optional[KafkaProducer] = None

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=[self.bootstrap],
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
                linger_ms=5,
                retries=3,
            )
        return self._producer

    def send(self, key: str, value: dict):
        try:
            p = self._get_producer()
            p.send(self.topic, key=key, value=value)
            p.flush(5)
        except KafkaError as e:
            raise EventPublishError(f"Failed to publish to {self.topic}: {e}") from e

    def close(self):
        if self._producer is not None:
            self._producer.close(5)
            self._producer = None
