"""
Tests for ZmqService subscription and connection lifecycle.

The connection must be open exactly while at least one subscription is live.
"""

import asyncio
import random

import pytest

from conftest import FakeExtractor, FakeTransport, make_tx
from marketrelay.core.config import RelayConfig
from marketrelay.spine.connection import RelayConnectionError
from marketrelay.spine.zmq_service import ZmqService


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, event, payload):
        self.calls.append((event, payload))


def assert_connection_invariant(service: ZmqService) -> None:
    assert service.is_connected == (not service.registry.is_empty)


class TestSubscribe:
    """Tests for subscribe / subscribe_event."""

    def test_first_subscribe_opens_connection(self, service):
        sub_id = asyncio.run(service.subscribe("tx", Recorder()))

        assert isinstance(sub_id, str)
        assert service.is_connected
        transport = FakeTransport.instances[0]
        assert transport.endpoint == "tcp://node:5556"
        assert transport.topics == ["tx"]

    def test_filter_applied_once_per_event(self, service):
        async def _run():
            await service.subscribe("tx", Recorder())
            await service.subscribe("tx", Recorder())
            await service.subscribe("sn", Recorder())

        asyncio.run(_run())

        assert len(FakeTransport.instances) == 1
        assert FakeTransport.instances[0].topics == ["tx", "sn"]

    def test_subscribe_event_is_alias(self, service):
        async def _run():
            a = await service.subscribe_event("tx", Recorder())
            b = await service.subscribe("tx", Recorder())
            return a, b

        a, b = asyncio.run(_run())

        assert a != b
        assert [s.id for s in service.registry.subscribers("tx")] == [a, b]

    def test_connect_failure_propagates_and_rolls_back(self, relay_config, extractor):
        service = ZmqService(
            relay_config,
            transport_factory=lambda: FakeTransport(fail_connect=True),
            payload_extractor=extractor,
        )

        with pytest.raises(RelayConnectionError, match="Unable to connect to ZMQ"):
            asyncio.run(service.subscribe("tx", Recorder()))

        assert service.registry.is_empty
        assert not service.is_connected

    def test_resubscribe_after_failure(self, relay_config, extractor):
        attempts = []

        def factory():
            attempts.append(1)
            return FakeTransport(fail_connect=len(attempts) == 1)

        service = ZmqService(relay_config, transport_factory=factory, payload_extractor=extractor)

        with pytest.raises(RelayConnectionError):
            asyncio.run(service.subscribe("tx", Recorder()))
        asyncio.run(service.subscribe("tx", Recorder()))

        assert service.is_connected
        assert FakeTransport.instances[1].topics == ["tx"]

    def test_concurrent_subscribes_open_one_connection(self, relay_config, extractor):
        service = ZmqService(
            relay_config,
            transport_factory=lambda: FakeTransport(yield_on_connect=True),
            payload_extractor=extractor,
        )

        async def _run():
            return await asyncio.gather(
                service.subscribe("tx", Recorder()),
                service.subscribe("sn", Recorder()),
            )

        ids = asyncio.run(_run())

        assert len(set(ids)) == 2
        assert len(FakeTransport.instances) == 1
        transport = FakeTransport.instances[0]
        assert transport.closed is False
        assert sorted(transport.topics) == ["sn", "tx"]
        assert_connection_invariant(service)


class TestUnsubscribe:
    """Tests for unsubscribe and cascading disconnect."""

    def test_last_unsubscribe_closes_connection(self, service):
        async def _run():
            sub_id = await service.subscribe("tx", Recorder())
            await service.unsubscribe(sub_id)

        asyncio.run(_run())

        transport = FakeTransport.instances[0]
        assert transport.calls[-2:] == [("unsubscribe", "tx"), ("close", None)]
        assert not service.is_connected
        assert service.registry.is_empty

    def test_event_filter_dropped_but_connection_kept(self, service):
        async def _run():
            tx_id = await service.subscribe("tx", Recorder())
            await service.subscribe("sn", Recorder())
            await service.unsubscribe(tx_id)

        asyncio.run(_run())

        transport = FakeTransport.instances[0]
        assert transport.topics == ["sn"]
        assert transport.closed is False
        assert service.is_connected

    def test_unknown_id_is_noop(self, service):
        async def _run():
            await service.subscribe("tx", Recorder())
            await service.unsubscribe("does-not-exist")

        asyncio.run(_run())

        assert service.registry.events() == ["tx"]
        assert len(service.registry) == 1
        assert service.is_connected
        assert ("unsubscribe", "tx") not in FakeTransport.instances[0].calls

    def test_unsubscribe_when_never_subscribed(self, service):
        asyncio.run(service.unsubscribe("nothing"))
        assert FakeTransport.instances == []

    def test_other_subscription_keeps_receiving(self, service):
        first, second = Recorder(), Recorder()

        async def _run():
            first_id = await service.subscribe("tx", first)
            await service.subscribe("tx", second)
            transport = FakeTransport.instances[0]
            await transport.deliver(make_tx(tx_hash="H1"))
            await service.unsubscribe(first_id)
            await transport.deliver(make_tx(tx_hash="H2"))

        asyncio.run(_run())

        # First-subscriber dispatch: "H1" goes to the first, "H2" to the survivor.
        assert [p.hash for _, p in first.calls] == ["H1"]
        assert [p.hash for _, p in second.calls] == ["H2"]

    def test_random_sequences_keep_invariant(self, service):
        rng = random.Random(7)

        async def _run():
            live: list[str] = []
            for _ in range(200):
                if live and rng.random() < 0.5:
                    sub_id = live.pop(rng.randrange(len(live)))
                    await service.unsubscribe(sub_id)
                elif rng.random() < 0.1:
                    await service.unsubscribe("unknown")
                else:
                    event = rng.choice(["tx", "sn", "lmi"])
                    live.append(await service.subscribe(event, Recorder()))
                assert_connection_invariant(service)
                assert len(service.registry) == len(live)
                if service.is_connected:
                    assert sorted(FakeTransport.instances[-1].topics) == sorted(service.registry.events())

        asyncio.run(_run())


class TestDelivery:
    """End-to-end delivery through the fake transport."""

    def test_tx_message_reaches_subscriber(self, service):
        recorder = Recorder()

        async def _run():
            await service.subscribe("tx", recorder)
            await FakeTransport.instances[0].deliver(
                make_tx(tx_hash="H", address="A", timestamp="1566308102")
            )

        asyncio.run(_run())

        assert len(recorder.calls) == 1
        event, payload = recorder.calls[0]
        assert event == "tx"
        assert (payload.hash, payload.address, payload.timestamp) == ("H", "A", 1566308102)
        assert service.stats["dispatched"] == 1

    def test_fan_out_config(self, extractor):
        config = RelayConfig(endpoint="tcp://node:5556", fan_out=True)
        service = ZmqService(config, transport_factory=FakeTransport, payload_extractor=extractor)
        first, second = Recorder(), Recorder()

        async def _run():
            await service.subscribe("tx", first)
            await service.subscribe("tx", second)
            await FakeTransport.instances[0].deliver(make_tx())

        asyncio.run(_run())

        assert len(first.calls) == 1
        assert len(second.calls) == 1

    def test_close_releases_everything(self, service, extractor):
        async def _run():
            await service.subscribe("tx", Recorder())
            await service.subscribe("sn", Recorder())
            await service.close()

        asyncio.run(_run())

        assert service.registry.is_empty
        assert not service.is_connected
        assert FakeTransport.instances[0].closed
        assert extractor.closed
