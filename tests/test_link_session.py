"""Tests para la sesión UDP con la báscula."""

import threading
import time
from unittest.mock import MagicMock, call

from conftest import build_frame, fire_timer, published
from scale_bridge.events import ConnectivityChanged, ReadingUpdated
from scale_bridge.exceptions import TransportError
from scale_bridge.frame_decoder import START_FRAME, STOP_FRAME
from scale_bridge.health import HealthState
from scale_bridge.models import ConnectionState

SCALE = ("192.168.4.1", 4444)
SOURCE = ("192.168.4.1", 50000)


def receive(session, frame):
    """Entrega un datagrama y procesa la cola."""
    session.on_datagram_received(frame, SOURCE)
    session.process_pending()


def health_tick(session, clock, seconds):
    """Avanza el reloj y ejecuta un chequeo de salud."""
    clock.advance(seconds)
    session.monitor.tick()
    session.process_pending()


class TestStart:
    """Tests para el arranque del enlace."""

    def test_start_binds_and_sends_start(self, session, transport):
        """Test que start enlaza el socket y envía START a la báscula."""
        session.start(background=False)

        transport.bind.assert_called_once()
        transport.send.assert_called_once_with(START_FRAME, SCALE)
        assert session.state is ConnectionState.DISCONNECTED

    def test_start_send_failure_schedules_reconnect(
        self, session, transport, sink, timer_factory
    ):
        """Test que un fallo al enviar START sigue el camino de reconexión."""
        transport.send.side_effect = TransportError("red inaccesible")

        session.start(background=False)
        session.process_pending()

        timer_factory.assert_called_once()
        assert timer_factory.call_args.args[0] == 2.0
        assert session.reconnect_pending
        # Nunca estuvo conectado: no hay evento de conectividad
        sink.publish.assert_not_called()

    def test_bind_failure_retries_bind_on_reconnect(
        self, session, transport, timer_factory
    ):
        """Test que si el bind falla, la reconexión vuelve a enlazar."""
        transport.is_bound = False
        transport.bind.side_effect = [TransportError("puerto ocupado"), None]

        session.start(background=False)
        transport.send.assert_not_called()

        session.process_pending()
        fire_timer(timer_factory)
        session.process_pending()

        assert transport.bind.call_count == 2
        transport.send.assert_called_once_with(START_FRAME, SCALE)
        assert not session.reconnect_pending


class TestDatagrams:
    """Tests para la recepción de tramas."""

    def test_end_to_end_reading(self, session, sink):
        """Test de una trama de 0.162 kg hasta el snapshot y el sink."""
        session.start(background=False)
        receive(session, build_frame("0.162", "0.000"))

        snapshot = session.snapshot().to_dict()
        assert snapshot["display"] == "0.162 kg"
        assert snapshot["netValue"] == 0.162
        assert snapshot["grossValue"] == 0.162
        assert snapshot["tareValue"] == 0.0
        assert snapshot["unit"] == "kg"
        assert snapshot["connected"] is True

        updates = published(sink, ReadingUpdated)
        assert len(updates) == 1
        assert updates[0].display == "0.162 kg"
        assert published(sink, ConnectivityChanged) == [
            ConnectivityChanged(connected=True)
        ]

    def test_connectivity_event_precedes_reading(self, session, sink):
        """Test que el evento de conexión se publica antes de la lectura."""
        receive(session, build_frame("1.000", "0.000"))

        events = [c.args[0] for c in sink.publish.call_args_list]
        assert isinstance(events[0], ConnectivityChanged)
        assert isinstance(events[1], ReadingUpdated)

    def test_identical_readings_published_once(self, session, sink):
        """Test de la política emit-on-change con lecturas repetidas."""
        frame = build_frame("3.210", "0.100")
        receive(session, frame)
        first = session.snapshot().reading
        receive(session, frame)

        assert len(published(sink, ReadingUpdated)) == 1
        # La caché sí guarda la lectura más reciente
        assert session.snapshot().reading is not first

    def test_changed_reading_published(self, session, sink):
        """Test que un cambio de bruto o tara se publica."""
        receive(session, build_frame("3.210", "0.100"))
        receive(session, build_frame("3.210", "0.200"))
        receive(session, build_frame("3.300", "0.200"))

        displays = [e.display for e in published(sink, ReadingUpdated)]
        assert displays == ["3.210 kg", "3.210 kg", "3.300 kg"]

    def test_invalid_frame_dropped(self, session, sink):
        """Test que una trama inválida se descarta sin lectura."""
        receive(session, build_frame("12.3abc", "0.000"))

        assert session.snapshot().reading is None
        assert published(sink, ReadingUpdated) == []
        # Cualquier respuesta cuenta como señal de vida
        assert session.connected

    def test_control_ack_marks_connected(self, session, sink, clock):
        """Test que un ack corto actualiza la última respuesta."""
        receive(session, START_FRAME)

        assert session.connected
        assert session.snapshot().last_response_at == clock.now
        assert session.snapshot().reading is None

    def test_failing_sink_does_not_break_loop(self, session, sink):
        """Test que un sink que falla no detiene el procesamiento."""
        sink.publish.side_effect = RuntimeError("suscriptor caído")

        receive(session, build_frame("7.000", "0.000"))

        assert session.snapshot().display == "7.000 kg"
        assert session.connected


class TestReconnect:
    """Tests para la reconexión."""

    def test_reconnect_is_idempotent(self, session, timer_factory):
        """Test que dos reconnect() dentro del retardo programan uno solo."""
        assert session.reconnect() is True
        assert session.reconnect() is False

        timer_factory.assert_called_once()
        timer_factory.return_value.start.assert_called_once()

    def test_reconnect_resends_start_without_rebinding(
        self, session, transport, timer_factory
    ):
        """Test que la reconexión reenvía START sin volver a enlazar."""
        session.start(background=False)
        session.reconnect()
        fire_timer(timer_factory)
        session.process_pending()

        transport.bind.assert_called_once()
        assert transport.send.call_args_list == [
            call(START_FRAME, SCALE),
            call(START_FRAME, SCALE),
        ]
        assert not session.reconnect_pending

    def test_reconnect_can_be_rescheduled(self, session, timer_factory):
        """Test que tras disparar el timer se puede programar otro."""
        session.reconnect()
        fire_timer(timer_factory)
        session.process_pending()

        assert session.reconnect() is True
        assert timer_factory.call_count == 2


class TestHealth:
    """Tests para la detección de conexión perdida."""

    def test_stale_connection_disconnects_once(
        self, session, sink, clock, timer_factory
    ):
        """Test que sin datos durante stale + intervalo se desconecta una vez."""
        session.start(background=False)
        receive(session, build_frame("1.000", "0.000"))

        for _ in range(5):
            health_tick(session, clock, 10)

        assert session.state is ConnectionState.DISCONNECTED
        assert session.snapshot().connected is False
        assert published(sink, ConnectivityChanged) == [
            ConnectivityChanged(connected=True),
            ConnectivityChanged(connected=False),
        ]
        assert session.monitor.state is HealthState.STALE_PENDING
        timer_factory.assert_called_once()

    def test_fresh_connection_not_stale(self, session, sink, clock):
        """Test que con respuestas recientes no hay desconexión."""
        receive(session, build_frame("1.000", "0.000"))
        health_tick(session, clock, 10)
        receive(session, build_frame("1.000", "0.000"))
        health_tick(session, clock, 10)

        assert session.connected
        assert published(sink, ConnectivityChanged) == [
            ConnectivityChanged(connected=True)
        ]

    def test_recovery_after_stale(self, session, sink, clock, timer_factory):
        """Test que tras recuperar la conexión se republica la lectura."""
        frame = build_frame("2.000", "0.000")
        receive(session, frame)
        health_tick(session, clock, 20)
        fire_timer(timer_factory)
        session.process_pending()
        receive(session, frame)

        assert session.connected
        assert session.monitor.state is HealthState.LIVE
        assert len(published(sink, ReadingUpdated)) == 2
        assert published(sink, ConnectivityChanged)[-1] == ConnectivityChanged(
            connected=True
        )

    def test_unresponsive_scale_retried(self, session, sink, clock, timer_factory):
        """Test que si la báscula nunca responde se reintenta START."""
        session.start(background=False)

        health_tick(session, clock, 10)
        timer_factory.assert_not_called()

        health_tick(session, clock, 10)
        timer_factory.assert_called_once()
        sink.publish.assert_not_called()


class TestStop:
    """Tests para el apagado ordenado."""

    def test_stop_sends_single_stop_before_close(self, session, transport, sink):
        """Test que stop envía un STOP y luego cierra socket y sink."""
        session.start(background=False)
        session.stop()

        names = [c[0] for c in transport.method_calls]
        assert names == ["bind", "send", "send", "close"]
        assert transport.send.call_args_list[-1] == call(STOP_FRAME, SCALE)
        sink.close.assert_called_once()

    def test_stop_survives_stop_send_failure(self, session, transport, sink):
        """Test que si el envío de STOP falla igual se cierra todo."""
        transport.send.side_effect = [None, TransportError("red caída")]
        session.start(background=False)
        session.stop()

        stop_calls = [
            c for c in transport.send.call_args_list if c.args[0] == STOP_FRAME
        ]
        assert len(stop_calls) == 1
        transport.close.assert_called_once()
        sink.close.assert_called_once()

    def test_stop_waits_grace_period(self, link_config, sink, transport, clock):
        """Test que stop espera el margen antes de cerrar el socket."""
        from scale_bridge.link_session import LinkSession

        sleep = MagicMock()
        session = LinkSession(
            link_config, sink, transport=transport, clock=clock, sleep=sleep
        )
        session.stop()
        sleep.assert_called_once_with(0.1)

    def test_stop_cancels_pending_reconnect(self, session, timer_factory):
        """Test que stop cancela la reconexión pendiente."""
        session.reconnect()
        session.stop()

        timer_factory.return_value.cancel.assert_called_once()
        assert session.reconnect() is False

    def test_stop_is_idempotent(self, session, transport):
        """Test que un segundo stop no reenvía STOP."""
        session.stop()
        session.stop()

        transport.send.assert_called_once_with(STOP_FRAME, SCALE)

    def test_close_failure_does_not_skip_sink(self, session, transport, sink):
        """Test que un error al cerrar el socket no impide cerrar el sink."""
        transport.close.side_effect = OSError("bad fd")
        session.stop()
        sink.close.assert_called_once()

    def test_events_after_stop_ignored(self, session, sink):
        """Test que tras stop no se procesan datagramas."""
        session.stop()
        receive(session, build_frame("1.000", "0.000"))

        sink.publish.assert_not_called()
        assert session.snapshot().reading is None

    def test_stop_waits_for_inflight_reconnect_start(
        self, session, transport, timer_factory
    ):
        """Test que un START de reconexión en curso sale antes que el STOP."""
        sent = []
        entered = threading.Event()
        release = threading.Event()

        def send(frame, endpoint):
            if frame == START_FRAME:
                entered.set()
                release.wait(timeout=5)
            sent.append(frame)

        transport.send.side_effect = send
        session.reconnect()
        fire_timer(timer_factory)

        loop = threading.Thread(target=session.process_pending)
        loop.start()
        assert entered.wait(timeout=5)

        stopper = threading.Thread(target=session.stop)
        stopper.start()
        time.sleep(0.1)
        # STOP queda retenido mientras el START no termina
        assert sent == []

        release.set()
        loop.join(timeout=5)
        stopper.join(timeout=5)

        assert sent == [START_FRAME, STOP_FRAME]
        transport.bind.assert_not_called()
        transport.close.assert_called_once()

    def test_reconnect_after_stop_does_not_rebind(
        self, session, transport, timer_factory
    ):
        """Test que una reconexión vencida tras stop no reabre el socket."""
        transport.is_bound = False
        session.reconnect()
        session.stop()

        session._handle_reconnect_due()

        transport.bind.assert_not_called()
        assert transport.send.call_args_list == [call(STOP_FRAME, SCALE)]
