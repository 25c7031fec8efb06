import asyncio
import json
import time

import pytest
import pytest_asyncio

from siren.services.hub import NotificationHub, Subscriber


@pytest_asyncio.fixture
async def hub():
    hub = NotificationHub(buffer_size=4)
    hub.start()
    yield hub
    await hub.stop()


@pytest.mark.asyncio
@pytest.mark.service
async def test_register_and_publish(hub):
    """Todos los subscribers registrados reciben el mensaje."""
    first, second = hub.new_subscriber("a"), hub.new_subscriber("b")
    hub.register(first)
    hub.register(second)

    hub.publish(b"hello")
    await hub.flush()

    assert hub.subscriber_count == 2
    assert await first.next_message() == b"hello"
    assert await second.next_message() == b"hello"


@pytest.mark.asyncio
@pytest.mark.service
async def test_unregister_closes_subscriber(hub):
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    hub.unregister(subscriber)
    hub.publish(b"ignored")
    await hub.flush()

    assert hub.subscriber_count == 0
    assert subscriber.closed is True
    assert await subscriber.next_message() is None


@pytest.mark.asyncio
@pytest.mark.service
async def test_full_subscriber_is_dropped(hub):
    """Un subscriber con el buffer lleno se expulsa sin afectar al resto."""
    slow, fast = hub.new_subscriber("slow"), hub.new_subscriber("fast")
    hub.register(slow)
    hub.register(fast)

    for i in range(5):
        hub.publish(str(i).encode())
        await hub.flush()
        # fast consume todo lo que llega
        assert await fast.next_message() == str(i).encode()

    assert slow.closed is True
    assert fast.closed is False
    assert hub.subscriber_count == 1


@pytest.mark.asyncio
@pytest.mark.service
async def test_publish_does_not_block(hub):
    """publish vuelve enseguida aunque haya muchos subscribers sin leer."""
    for _ in range(200):
        hub.register(hub.new_subscriber())
    await hub.flush()

    started = time.monotonic()
    for _ in range(50):
        hub.publish(b"x" * 1024)
    elapsed = time.monotonic() - started
    await hub.flush()

    assert elapsed < 1.0
    assert hub.subscriber_count == 0


@pytest.mark.asyncio
@pytest.mark.service
async def test_publish_state_serializes_store(hub, store, make_payload):
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    store.ingest(make_payload(("firing", {"alertname": "A"})))

    hub.publish_state(store)
    await hub.flush()

    message = json.loads(await subscriber.next_message())
    assert message["type"] == "update"
    assert message["hasUnacknowledged"] is True
    assert message["alerts"][0]["alert"]["labels"] == {"alertname": "A"}
    assert message["alerts"][0]["isAcknowledged"] is False


@pytest.mark.asyncio
@pytest.mark.service
async def test_publish_from_other_thread(hub):
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    await hub.flush()

    await asyncio.to_thread(hub.publish, b"from-thread")

    assert await asyncio.wait_for(subscriber.next_message(), timeout=1) == b"from-thread"


@pytest.mark.asyncio
@pytest.mark.service
async def test_stop_closes_all_subscribers():
    hub = NotificationHub()
    hub.start()
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    await hub.flush()

    await hub.stop()

    assert hub.running is False
    assert subscriber.closed is True


@pytest.mark.service
def test_publish_before_start_is_dropped():
    hub = NotificationHub()

    hub.publish(b"nobody")

    assert hub.subscriber_count == 0


@pytest.mark.asyncio
@pytest.mark.service
async def test_subscriber_close_is_idempotent():
    subscriber = Subscriber(buffer_size=2)
    assert subscriber.offer(b"1") is True
    assert subscriber.offer(b"2") is True
    assert subscriber.offer(b"3") is False

    subscriber.close()
    subscriber.close()

    assert subscriber.offer(b"4") is False
    assert await subscriber.next_message() is None


@pytest.mark.asyncio
@pytest.mark.service
async def test_publish_state_reads_store_when_processed(hub, store, make_payload):
    """El estado se lee al procesar la petición, no al enviarla."""
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    store.ingest(make_payload(("firing", {"alertname": "A"})))

    hub.publish_state(store)
    store.ingest(make_payload(("firing", {"alertname": "B"})))
    await hub.flush()

    message = json.loads(await subscriber.next_message())
    names = [entry["alert"]["labels"]["alertname"] for entry in message["alerts"]]
    assert names == ["B", "A"]


@pytest.mark.asyncio
@pytest.mark.service
async def test_last_state_matches_store_after_concurrent_ingest(store, make_payload):
    """Con dos hilos ingiriendo a la vez, la última publicación es el estado final."""
    hub = NotificationHub(buffer_size=256)
    hub.start()
    subscriber = hub.new_subscriber()
    hub.register(subscriber)
    store.add_listener(lambda: hub.publish_state(store))
    rounds = 20

    def worker(name):
        for i in range(rounds):
            store.ingest(make_payload(("firing", {"alertname": name, "n": str(i)})))

    await asyncio.gather(asyncio.to_thread(worker, "a"), asyncio.to_thread(worker, "b"))
    await hub.flush()

    messages = [json.loads(await subscriber.next_message()) for _ in range(2 * rounds)]
    expected = [entry.id for entry in store.snapshot()]
    assert len(expected) == 2 * rounds
    assert [entry["id"] for entry in messages[-1]["alerts"]] == expected
    await hub.stop()
