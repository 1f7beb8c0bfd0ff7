"""Unit tests for the subscription registry."""

from app.services.recent_cache import SubscriptionRegistry


class TestSubscriptionRegistry:
    def setup_method(self) -> None:
        self.registry = SubscriptionRegistry()

    def test_publish_reaches_every_subscriber(self) -> None:
        first: list = []
        second: list = []
        self.registry.add(first.append)
        self.registry.add(second.append)
        assert self.registry.publish(()) == 2
        assert first == [()]
        assert second == [()]

    def test_unsubscribe_removes_only_its_handle(self) -> None:
        received: list = []
        handle_a = self.registry.add(received.append)
        self.registry.add(received.append)
        handle_a()
        assert len(self.registry) == 1
        self.registry.publish(())
        assert received == [()]

    def test_unsubscribe_is_idempotent(self) -> None:
        handle = self.registry.add(lambda s: None)
        handle()
        handle()
        assert len(self.registry) == 0

    def test_subscriber_removed_during_publish_is_skipped(self) -> None:
        received: list = []
        handles: list = []

        def first(snapshot) -> None:
            handles[1]()

        handles.append(self.registry.add(first))
        handles.append(self.registry.add(received.append))
        self.registry.publish(())
        assert received == []

    def test_failure_is_counted_not_raised(self) -> None:
        def broken(snapshot) -> None:
            raise ValueError("boom")

        self.registry.add(broken)
        self.registry.add(lambda s: None)
        assert self.registry.publish(()) == 1

    def test_clear(self) -> None:
        self.registry.add(lambda s: None)
        self.registry.clear()
        assert len(self.registry) == 0
