# tests/test_throttle.py

"""Tests for per-host request throttling."""

import random
import unittest
from unittest.mock import MagicMock, patch

from realtrack.services.throttle import RequestThrottle, domain_of


class TestDomainOf(unittest.TestCase):
    def test_host_lowercased(self) -> None:
        self.assertEqual(
            domain_of("https://WWW.Reality.sk/detail/1/"), "www.reality.sk",
        )


@patch("realtrack.services.throttle.time.sleep")
@patch("realtrack.services.throttle.time.monotonic")
class TestRequestThrottle(unittest.TestCase):
    """Spacing, reservation and TTL eviction."""

    def _throttle(self, **kwargs: float) -> RequestThrottle:
        params: dict[str, float] = {"min_delay": 1.5, "jitter": 0.0, "ttl": 60.0}
        params.update(kwargs)
        return RequestThrottle(rng=random.Random(0), **params)

    def test_first_request_not_delayed(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.return_value = 100.0
        throttle = self._throttle()

        self.assertEqual(throttle.wait("www.reality.sk"), 0.0)
        mock_sleep.assert_not_called()

    def test_waits_remaining_spacing(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.side_effect = [100.0, 100.5]
        throttle = self._throttle()

        throttle.wait("www.reality.sk")
        delay = throttle.wait("www.reality.sk")

        self.assertAlmostEqual(delay, 1.0)
        mock_sleep.assert_called_once_with(delay)

    def test_no_wait_after_spacing_elapsed(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.side_effect = [100.0, 102.0]
        throttle = self._throttle()

        throttle.wait("www.reality.sk")

        self.assertEqual(throttle.wait("www.reality.sk"), 0.0)
        mock_sleep.assert_not_called()

    def test_back_to_back_requests_queue_up(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        """Reserved slots stack, so concurrent callers never collide."""
        mock_monotonic.return_value = 100.0
        throttle = self._throttle()

        delays = [throttle.wait("reality.bazos.sk") for _ in range(3)]

        self.assertEqual(delays, [0.0, 1.5, 3.0])

    def test_hosts_are_independent(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.return_value = 100.0
        throttle = self._throttle()

        throttle.wait("www.reality.sk")

        self.assertEqual(throttle.wait("www.nehnutelnosti.sk"), 0.0)

    def test_jitter_added(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.return_value = 100.0
        rng = MagicMock()
        rng.uniform.return_value = 0.3
        throttle = RequestThrottle(min_delay=1.5, jitter=0.5, ttl=60.0, rng=rng)

        throttle.wait("www.reality.sk")
        delay = throttle.wait("www.reality.sk")

        self.assertAlmostEqual(delay, 1.8)
        rng.uniform.assert_called_with(0, 0.5)

    def test_idle_keys_evicted(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.side_effect = [100.0, 170.0]
        throttle = self._throttle(ttl=60.0)

        throttle.wait("www.reality.sk")
        throttle.wait("reality.bazos.sk")

        self.assertEqual(throttle.tracked_keys(), ["reality.bazos.sk"])

    def test_reset(
        self, mock_monotonic: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        mock_monotonic.return_value = 100.0
        throttle = self._throttle()
        throttle.wait("a.sk")
        throttle.wait("b.sk")

        self.assertEqual(throttle.reset("a.sk"), 1)
        self.assertEqual(throttle.reset("a.sk"), 0)
        self.assertEqual(throttle.reset(), 1)
        self.assertEqual(throttle.tracked_keys(), [])


if __name__ == "__main__":
    unittest.main()
