"""Unit tests for CallRegistry."""

import threading

from prometheus_client import REGISTRY

from agi_gateway.core.call_registry import CallRegistry
from agi_gateway.core.models import AgiCall


def _call(channel):
    return AgiCall({"channel": channel})


class TestCallRegistry:

    def test_add_and_remove(self):
        registry = CallRegistry()
        first, second = _call("SIP/1"), _call("SIP/2")
        registry.add(first)
        registry << second
        assert registry.size == 2
        assert len(registry) == 2

        assert registry.remove(first) is True
        assert registry.size == 1
        assert registry.find("SIP/1") is None
        assert registry.find("SIP/2") is second

    def test_remove_absent_call_is_a_no_op(self):
        registry = CallRegistry()
        registry.add(_call("SIP/1"))
        assert registry.remove(_call("SIP/404")) is False
        assert registry.size == 1

    def test_duplicate_identifier_overwrites(self):
        registry = CallRegistry()
        old, new = _call("SIP/1"), _call("SIP/1")
        registry.add(old)
        registry.add(new)
        assert registry.size == 1
        assert registry.find("SIP/1") is new

    def test_removing_overwritten_call_keeps_successor(self):
        registry = CallRegistry()
        old, new = _call("SIP/1"), _call("SIP/1")
        registry.add(old)
        registry.add(new)
        assert registry.remove(old) is False
        assert registry.find("SIP/1") is new

    def test_emptiness_and_clear(self):
        registry = CallRegistry()
        assert registry.is_empty()
        assert not registry.any()
        registry.add(_call("SIP/1"))
        assert registry.any()
        registry.clear()
        assert registry.is_empty()
        assert registry.to_list() == []

    def test_with_tag_returns_snapshot(self):
        registry = CallRegistry()
        tagged, untagged = _call("SIP/1"), _call("SIP/2")
        tagged.tag("vip")
        registry.add(tagged)
        registry.add(untagged)

        vip_calls = registry.with_tag("vip")
        assert vip_calls == [tagged]

        untagged.tag("vip")
        assert vip_calls == [tagged]
        assert set(registry.with_tag("vip")) == {tagged, untagged}

    def test_to_list_is_a_copy(self):
        registry = CallRegistry()
        registry.add(_call("SIP/1"))
        calls = registry.to_list()
        registry.clear()
        assert len(calls) == 1

    def test_concurrent_add_and_remove(self):
        registry = CallRegistry()
        calls = [[_call(f"SIP/{worker}-{i}") for i in range(100)] for worker in range(8)]

        def churn(batch):
            for call in batch:
                registry.add(call)
            for call in batch[::2]:
                registry.remove(call)

        threads = [threading.Thread(target=churn, args=(batch,)) for batch in calls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.size == 8 * 50


def _registered_gauge(name):
    return REGISTRY.get_sample_value("agi_gateway_registered_calls", {"registry": name})


class TestRegisteredCallsGauge:

    def test_each_registry_reports_its_own_size(self):
        inbound = CallRegistry(name="gauge-inbound")
        outbound = CallRegistry(name="gauge-outbound")

        inbound.add(_call("SIP/1"))
        inbound.add(_call("SIP/2"))
        outbound.add(_call("SIP/3"))
        outbound.remove(outbound.find("SIP/3"))

        assert _registered_gauge("gauge-inbound") == 2
        assert _registered_gauge("gauge-outbound") == 0

    def test_clear_resets_gauge(self):
        registry = CallRegistry(name="gauge-clear")
        registry.add(_call("SIP/1"))
        assert _registered_gauge("gauge-clear") == 1

        registry.clear()

        assert _registered_gauge("gauge-clear") == 0
