"""Tests para los sinks de difusión."""

from unittest.mock import MagicMock

from scale_bridge.events import ConnectivityChanged
from scale_bridge.sink import BroadcastSink, FanoutSink


class TestFanoutSink:
    """Tests para FanoutSink."""

    def test_publish_to_all(self):
        """Test que el evento llega a todos los sinks."""
        first = MagicMock(spec=BroadcastSink)
        second = MagicMock(spec=BroadcastSink)
        fanout = FanoutSink([first])
        fanout.add(second)

        event = ConnectivityChanged(connected=True)
        fanout.publish(event)

        first.publish.assert_called_once_with(event)
        second.publish.assert_called_once_with(event)

    def test_failing_sink_isolated(self):
        """Test que un sink que falla no impide publicar en los demás."""
        broken = MagicMock(spec=BroadcastSink)
        broken.publish.side_effect = ConnectionError("cliente caído")
        healthy = MagicMock(spec=BroadcastSink)
        fanout = FanoutSink([broken, healthy])

        fanout.publish(ConnectivityChanged(connected=False))

        healthy.publish.assert_called_once()

    def test_close_all(self):
        """Test que close cierra todos aunque alguno falle."""
        broken = MagicMock(spec=BroadcastSink)
        broken.close.side_effect = OSError("ya cerrado")
        healthy = MagicMock(spec=BroadcastSink)

        FanoutSink([broken, healthy]).close()

        healthy.close.assert_called_once()
