import json

import pytest
from kafka.errors import KafkaTimeoutError

from checkout_service.core.errors import EventPublishError
from checkout_service.kafka import producer as producer_module
from checkout_service.kafka.producer import OrderEventPublisher


class StubProducer:
    def __init__(self, **config):
        self.config = config
        self.records = []
        self.closed = False
        self.fail = False

    def send(self, topic, key=None, value=None):
        if self.fail:
            raise KafkaTimeoutError("broker unavailable")
        self.records.append((topic, self.config["key_serializer"](key), self.config["value_serializer"](value)))

    def flush(self, timeout=None):
        pass

    def close(self, timeout=None):
        self.closed = True


@pytest.fixture
def stub(monkeypatch):
    created = []

    def factory(**config):
        p = StubProducer(**config)
        created.append(p)
        return p

    monkeypatch.setattr(producer_module, "KafkaProducer", factory)
    return created


def test_publish_serializes_key_and_value(stub):
    publisher = OrderEventPublisher("kafka:9092", "order.events")
    publisher.send("order-1", {"type": "order.created", "amount": 2000})

    topic, key, value = stub[0].records[0]
    assert topic == "order.events"
    assert key == b"order-1"
    assert json.loads(value) == {"type": "order.created", "amount": 2000}
    assert stub[0].config["bootstrap_servers"] == ["kafka:9092"]


def test_producer_created_once(stub):
    publisher = OrderEventPublisher("kafka:9092", "order.events")
    publisher.send("a", {})
    publisher.send("b", {})
    assert len(stub) == 1


def test_publish_failure(stub):
    publisher = OrderEventPublisher("kafka:9092", "order.events")
    publisher.send("a", {})
    stub[0].fail = True
    with pytest.raises(EventPublishError):
        publisher.send("b", {})


def test_close(stub):
    publisher = OrderEventPublisher("kafka:9092", "order.events")
    publisher.send("a", {})
    publisher.close()
    assert stub[0].closed is True
    publisher.close()
