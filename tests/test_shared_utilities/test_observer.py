"""Tests for progress observers."""

from unittest.mock import Mock

from src.shared_utilities.observer import (
    LoggingObserver,
    ObserverDispatcher,
    ResurrectionObserver,
    as_dispatcher,
)


class TestObserverDispatcher:
    """Test ObserverDispatcher fan-out."""

    def test_every_observer_receives_the_hook(self):
        first, second = Mock(), Mock()
        dispatcher = ObserverDispatcher([first, second])

        dispatcher.on_iteration_start(1, 10)

        first.on_iteration_start.assert_called_once_with(1, 10)
        second.on_iteration_start.assert_called_once_with(1, 10)

    def test_failing_observer_is_skipped(self):
        broken, healthy = Mock(), Mock()
        broken.on_verdict.side_effect = RuntimeError("sink down")
        dispatcher = ObserverDispatcher([broken, healthy])

        dispatcher.on_verdict("verdict")

        healthy.on_verdict.assert_called_once_with("verdict")

    def test_add(self):
        observer = Mock()
        dispatcher = ObserverDispatcher()
        dispatcher.add(observer)

        dispatcher.on_batch_started("batch", 1, 2)

        observer.on_batch_started.assert_called_once_with("batch", 1, 2)


class TestAsDispatcher:
    """Test as_dispatcher."""

    def test_none_becomes_empty_dispatcher(self):
        dispatcher = as_dispatcher(None)

        assert dispatcher.observers == []
        dispatcher.on_compilation_check("baseline", Mock())

    def test_dispatcher_is_reused(self):
        dispatcher = ObserverDispatcher()
        assert as_dispatcher(dispatcher) is dispatcher

    def test_plain_observer_is_wrapped(self):
        observer = ResurrectionObserver()
        assert as_dispatcher(observer).observers == [observer]


class TestLoggingObserver:
    """Test LoggingObserver hooks do not raise on realistic payloads."""

    def test_hooks(self):
        observer = LoggingObserver()
        error = Mock(category=Mock(value="lockfile_conflict"), package_name=None)

        observer.on_iteration_start(1, 3)
        observer.on_error_analysis(1, [error, error])
        observer.on_fix_applied(1, error, Mock(describe=Mock(return_value="force")))
        observer.on_compilation_check("final", Mock(success=True, error_count=0))
