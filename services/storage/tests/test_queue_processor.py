"""Order intake queue and the order processor."""

import json
import threading
import uuid

import pytest

import processor
from queues import QueueRepo
from repo import ORDER_TABLE, EntityRepo
from results import Err, ErrorKind, Ok


@pytest.fixture
def queue():
    return QueueRepo("order-test", max_dequeue_count=2)


def order_rows():
    return list(EntityRepo(ORDER_TABLE).list())


def test_enqueue_receive_delete(queue):
    queue.enqueue("first")
    queue.enqueue("second")

    msg = queue.receive()
    assert msg.body == "first"
    assert msg.dequeue_count == 1
    assert isinstance(queue.delete(msg.id, msg.pop_receipt), Ok)
    assert queue.receive().body == "second"


def test_received_message_is_hidden(queue):
    queue.enqueue("only")
    assert queue.receive(visibility_timeout=60) is not None
    assert queue.receive() is None


def test_stale_pop_receipt_cannot_delete(queue):
    queue.enqueue("m")
    first = queue.receive(visibility_timeout=0)
    second = queue.receive(visibility_timeout=0)
    assert second.dequeue_count == 2
    result = queue.delete(first.id, first.pop_receipt)
    assert isinstance(result, Err) and result.kind is ErrorKind.CONFLICT


def test_message_moves_to_poison_queue(queue):
    queue.enqueue("bad")
    queue.receive(visibility_timeout=0)
    queue.receive(visibility_timeout=0)
    assert queue.receive(visibility_timeout=0) is None
    assert queue.peek_count() == 0
    assert QueueRepo(queue.poison_name).peek_count() == 1


def test_queue_endpoint_enqueues_raw_body(client):
    r = client.post("/queue/orders", content="New order created for customer Alice", headers={"Content-Type": "text/plain"})
    assert r.status_code == 200
    assert QueueRepo().receive().body == "New order created for customer Alice"


def test_queue_endpoint_rejects_invalid_utf8(client):
    r = client.post("/queue/orders", content=b"\xff\xfe order", headers={"Content-Type": "text/plain"})
    assert r.status_code == 400
    assert r.json()["kind"] == "VALIDATION"
    assert QueueRepo().peek_count() == 0


def test_processor_persists_order_json():
    payload = json.dumps({"customer_row_key": "c1", "product_row_key": "p1", "quantity": 3, "total_price": 29.97})
    processor.process(payload)

    rows = order_rows()
    assert len(rows) == 1
    assert rows[0].partition_key == ORDER_TABLE
    assert rows[0].properties["quantity"] == 3
    assert rows[0].properties["order_date"]


def test_processor_ignores_identity_in_payload():
    payload = json.dumps(
        {"partition_key": "X", "row_key": "evil", "customer_row_key": "c1", "product_row_key": "p1", "quantity": 1}
    )
    processor.process(payload)

    rows = order_rows()
    assert len(rows) == 1
    assert rows[0].partition_key == ORDER_TABLE
    assert rows[0].row_key != "evil"
    assert str(uuid.UUID(rows[0].row_key)) == rows[0].row_key
    assert "row_key" not in rows[0].properties


def test_processor_drops_malformed_payload_without_writing(queue):
    queue.enqueue("New order created for customer Alice")
    assert processor.run_once(queue) is True
    assert order_rows() == []
    assert queue.peek_count() == 0


def test_parse_order_reports_parse_kind():
    result = processor.parse_order('{"quantity": 0}')
    assert isinstance(result, Err) and result.kind is ErrorKind.PARSE


def test_failed_insert_leaves_message_for_redelivery(queue, monkeypatch):
    def reject(self, pk, rk, props):
        return Err(ErrorKind.STORAGE, "down")

    monkeypatch.setattr(EntityRepo, "insert", reject)
    queue.enqueue(json.dumps({"customer_row_key": "c1", "product_row_key": "p1", "quantity": 1}))
    assert processor.run_once(queue) is False
    assert queue.peek_count() == 1


def test_run_once_on_empty_queue(queue):
    assert processor.run_once(queue) is None


def test_worker_stops_when_signalled(queue):
    stop = threading.Event()
    stop.set()
    processor.run_worker(queue, poll_interval=0.01, stop=stop)
