"""
Unit tests for the registration API and the resource registries.
"""
import random

import pytest

from memwatch.exceptions import RegistryError
from memwatch.registries import ResourceRegistries, estimate_payload_size
from tests.conftest import FakeClock, Widget


class TestComponentRegistration:

    def test_product_list_scenario(self, optimizer):
        """Three registrations then one unregistration keep exact totals"""
        for _ in range(3):
            optimizer.register_component("ProductList", 2048)

        record = optimizer.get_component_stats()[0]
        assert record.name == "ProductList"
        assert record.instances == 3
        assert record.total_size == 6144
        assert record.average_size == 2048

        optimizer.unregister_component("ProductList", 2048)
        record = optimizer.get_component_stats()[0]
        assert record.instances == 2
        assert record.total_size == 4096

    def test_instances_never_negative(self):
        """Random register/unregister sequences keep the record consistent with the net balance"""
        rng = random.Random(1234)
        registries = ResourceRegistries(clock=FakeClock())
        balance = 0

        for _ in range(500):
            if rng.random() < 0.5:
                registries.register_component("Cart", 10)
                balance += 1
            else:
                registries.unregister_component("Cart", 10)
                balance = max(0, balance - 1)

            names = {r.name: r for r in registries.snapshot_components()}
            if balance == 0:
                assert "Cart" not in names
            else:
                assert names["Cart"].instances == balance
                assert names["Cart"].instances >= 0

    def test_unregister_missing_component_is_noop(self):
        registries = ResourceRegistries()
        assert registries.unregister_component("Ghost") is None
        assert registries.snapshot_components() == []

    def test_register_updates_last_accessed(self):
        clock = FakeClock()
        registries = ResourceRegistries(clock=clock)
        registries.register_component("Header")
        clock.advance(30)
        record = registries.register_component("Header")
        assert record.last_accessed == clock.now

    @pytest.mark.parametrize("name,size", [("", 10), (None, 10), ("Footer", -1)])
    def test_invalid_registration_raises(self, name, size):
        registries = ResourceRegistries()
        with pytest.raises(RegistryError):
            registries.register_component(name, size)

    def test_tracked_component_context(self, optimizer):
        with optimizer.tracked_component("Modal", 512):
            assert optimizer.get_component_stats()[0].instances == 1
        assert optimizer.get_component_stats() == []

    def test_leak_risk_is_reserved(self, optimizer):
        optimizer.register_component("Gallery", 4096)
        assert optimizer.get_component_stats()[0].leak_risk == 0


class TestCacheTracking:

    def test_size_is_serialized_length(self):
        data = {"sku": "A-1", "price": 10}
        registries = ResourceRegistries()
        entry = registries.track_cache("product:A-1", data)
        assert entry.size == estimate_payload_size(data)
        assert entry.size == len('{"sku": "A-1", "price": 10}')

    def test_retrack_overwrites_created(self):
        clock = FakeClock()
        registries = ResourceRegistries(clock=clock)
        registries.track_cache("k", "v1")
        clock.advance(100)
        registries.track_cache("k", "v2-longer")

        assert len(registries.cache) == 1
        assert registries.cache["k"].created == clock.now

    def test_unserializable_payload_falls_back(self):
        data = []
        data.append(data)
        assert estimate_payload_size(data) == len(repr(data))

    def test_untrack_missing_key(self):
        registries = ResourceRegistries()
        assert registries.untrack_cache("nope") is False


class TestHandleRegistries:

    def test_timer_and_observer_sets(self, optimizer):
        optimizer.track_timer("t1")
        optimizer.track_timer("t1")
        optimizer.track_observer("o1")
        counts = optimizer.registries.counts()
        assert counts["timers"] == 1
        assert counts["observers"] == 1

        optimizer.untrack_timer("t1")
        optimizer.untrack_timer("t1")
        optimizer.untrack_observer("missing")
        counts = optimizer.registries.counts()
        assert counts["timers"] == 0
        assert counts["observers"] == 1

    def test_event_listener_wrapper(self, optimizer):
        widget = Widget()
        key = optimizer.add_event_listener(widget, "click", lambda event: None)

        assert key.startswith("Widget-click-")
        handle = optimizer.registries.listeners[key]
        assert handle.target is widget
        assert optimizer.remove_event_listener(key) is True
        assert optimizer.remove_event_listener(key) is False

    def test_listener_on_builtin_target(self, optimizer):
        """Targets that cannot be weakly referenced are held directly"""
        key = optimizer.add_event_listener("window", "resize", print)
        assert optimizer.registries.listeners[key].target == "window"
