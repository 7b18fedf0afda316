"""Sesión UDP con la báscula en modo streaming."""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from .cache import ReadingCache
from .config import LinkSessionConfig
from .events import (
    ConnectionLost,
    ConnectivityChanged,
    DatagramReceived,
    HealthCheck,
    ReadingUpdated,
    ReconnectDue,
    Shutdown,
    WeightEvent,
)
from .exceptions import DecodeError, StaleConnectionError, TransportError
from .frame_decoder import START_FRAME, STOP_FRAME, decode_frame, format_frame_trace
from .health import HealthMonitor
from .models import ConnectionState, Snapshot
from .sink import BroadcastSink
from .transport import UDPTransport

logger = logging.getLogger(__name__)

RECEIVE_TIMEOUT = 0.5  # segundos entre chequeos de parada del hilo receptor


class LinkSession:
    """
    Enlace con una báscula que transmite su peso por UDP.

    Tras enviar el comando START la báscula emite tramas de peso por su
    cuenta; la sesión nunca hace polling. Todo cambio de estado pasa por una
    única cola de eventos consumida en orden por un solo loop, así que el
    receptor UDP, el monitor de salud y los timers de reconexión solo encolan.

    Args:
        config: Configuración del enlace
        sink: Destino de los eventos de peso y conectividad
        transport: Socket UDP (por defecto UDPTransport en receive_port)
        cache: Caché de último valor (por defecto una nueva)
        clock: Reloj monotónico en segundos
        timer_factory: Fábrica de timers de un disparo (firma de threading.Timer)
        sleep: Función de espera usada en el apagado
    """

    def __init__(
        self,
        config: LinkSessionConfig,
        sink: BroadcastSink,
        transport: Optional[UDPTransport] = None,
        cache: Optional[ReadingCache] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.sink = sink
        self.transport = transport or UDPTransport(
            config.bind_address, config.receive_port
        )
        self.cache = cache or ReadingCache()
        self.state = ConnectionState.DISCONNECTED
        self._clock = clock
        self._timer_factory = timer_factory
        self._sleep = sleep
        self._events: queue.Queue = queue.Queue()
        self.monitor = HealthMonitor(
            self._events.put,
            clock,
            interval_s=config.health_check_interval_ms / 1000,
            stale_after_s=config.stale_after_ms / 1000,
        )
        self._reconnect_lock = threading.Lock()
        self._reconnect_timer: Optional[threading.Timer] = None
        # Serializa START/bind con el paso a detenido: ningún START sale tras STOP
        self._control_lock = threading.Lock()
        self._last_published = None
        self._last_start_sent_at: Optional[float] = None
        self._threads: list[threading.Thread] = []
        self._running = False
        self._stopped = False

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        with self._reconnect_lock:
            return self._reconnect_timer is not None

    def snapshot(self) -> Snapshot:
        """Copia puntual del último estado conocido."""
        return self.cache.get()

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self, background: bool = True):
        """
        Enlaza el puerto de recepción y envía el comando START.

        Args:
            background: Si es True lanza los hilos de recepción, de proceso
                y el monitor de salud. Si es False el llamador procesa los
                eventos con process_pending().
        """
        logger.info(
            f"Iniciando enlace con báscula en "
            f"{self.config.scale_address}:{self.config.send_port} "
            f"(recepción en puerto {self.config.receive_port})"
        )
        self._running = True
        bound = self._open()

        if background:
            self._threads = [
                threading.Thread(
                    target=self._receive_loop, daemon=True, name="udp-receiver"
                ),
                threading.Thread(
                    target=self._process_loop, daemon=True, name="link-session"
                ),
            ]
            for thread in self._threads:
                thread.start()
            self.monitor.start()

        if bound:
            with self._control_lock:
                if not self._stopped:
                    self._send_start()

    def stop(self):
        """
        Apaga el enlace de forma ordenada.

        Cancela timers, envía STOP (un solo intento), espera un margen para
        que la trama salga, cierra el socket, detiene los hilos y cierra el
        sink. Cada paso se ejecuta aunque el anterior falle.
        """
        with self._control_lock:
            if self._stopped:
                return
            self._stopped = True
            self._running = False
        logger.info("Deteniendo enlace con la báscula...")

        self._shutdown_step("cancelar timers", self._cancel_timers)
        self._shutdown_step("enviar STOP", self._send_stop)
        self._shutdown_step(
            "esperar envío", self._sleep, self.config.shutdown_grace_ms / 1000
        )
        self._shutdown_step("cerrar socket", self.transport.close)
        self._shutdown_step("detener hilos", self._join_threads)
        self._shutdown_step("cerrar sink", self.sink.close)
        logger.info("Enlace detenido")

    def reconnect(self) -> bool:
        """
        Programa el reenvío de START tras reconnect_delay_ms.

        Es idempotente: si ya hay una reconexión pendiente no hace nada.

        Returns:
            True si se programó una nueva reconexión
        """
        delay = self.config.reconnect_delay_ms / 1000
        with self._reconnect_lock:
            if self._stopped or self._reconnect_timer is not None:
                return False
            timer = self._timer_factory(
                delay, self._events.put, args=(ReconnectDue(),)
            )
            timer.daemon = True
            self._reconnect_timer = timer
        timer.start()
        logger.info(f"🔄 Reconexión programada en {delay}s")
        return True

    # ------------------------------------------------------------------
    # Entrada de eventos
    # ------------------------------------------------------------------

    def on_datagram_received(self, frame: bytes, source_addr=None):
        """Encola un datagrama recibido de la báscula."""
        self._events.put(
            DatagramReceived(frame=frame, source=source_addr, received_at=self._clock())
        )

    def process_pending(self) -> int:
        """
        Procesa los eventos encolados sin bloquear.

        Returns:
            Número de eventos procesados
        """
        processed = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return processed
            self._dispatch(event)
            processed += 1

    def _process_loop(self):
        while True:
            event = self._events.get()
            if isinstance(event, Shutdown):
                break
            self._dispatch(event)

    def _receive_loop(self):
        while self._running:
            result = self.transport.recv(RECEIVE_TIMEOUT)
            if result is None:
                continue
            frame, source = result
            self.on_datagram_received(frame, source)

    def _dispatch(self, event):
        if self._stopped:
            return
        try:
            if isinstance(event, DatagramReceived):
                self._handle_datagram(event)
            elif isinstance(event, HealthCheck):
                self._handle_health_check(event)
            elif isinstance(event, ReconnectDue):
                self._handle_reconnect_due()
            elif isinstance(event, ConnectionLost):
                self._handle_connection_loss(event.error)
        except Exception as e:
            logger.error(f"Error al procesar evento {event}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Manejadores (solo se ejecutan en el loop de eventos)
    # ------------------------------------------------------------------

    def _handle_datagram(self, event: DatagramReceived):
        if self.config.debug:
            logger.debug(format_frame_trace(event.frame, event.source))

        self.cache.mark_response(event.received_at)
        self.monitor.mark_live()

        if self.state is ConnectionState.DISCONNECTED:
            self.state = ConnectionState.CONNECTED
            self.cache.set_connected(True)
            logger.info("✅ Conexión con la báscula establecida")
            self._publish(ConnectivityChanged(connected=True))

        try:
            reading = decode_frame(event.frame)
        except DecodeError as e:
            logger.warning(f"⚠️ Trama descartada: {e}")
            return

        if reading is None:
            logger.debug(f"Trama de control ignorada ({len(event.frame)} bytes)")
            return

        self.cache.update_reading(reading)
        if reading.same_weight(self._last_published):
            return

        self._last_published = reading
        logger.info(f"Peso: {reading.display}")
        self._publish(ReadingUpdated(reading=reading))

    def _handle_health_check(self, event: HealthCheck):
        last_response_at = self.cache.last_response_at
        if self.monitor.evaluate(event.now, last_response_at, self.state):
            self._handle_connection_loss(
                StaleConnectionError(
                    f"Sin respuesta durante más de {self.monitor.stale_after_s}s"
                )
            )
            return

        # La báscula nunca respondió al último START: reintentar sin eventos
        sent_at = self._last_start_sent_at
        if (
            self.state is ConnectionState.DISCONNECTED
            and sent_at is not None
            and not self.reconnect_pending
        ):
            last_activity = max(sent_at, last_response_at or sent_at)
            if event.now - last_activity > self.monitor.stale_after_s:
                logger.info("🔄 La báscula no responde al comando START")
                self.reconnect()

    def _handle_reconnect_due(self):
        with self._reconnect_lock:
            self._reconnect_timer = None
        with self._control_lock:
            if self._stopped:
                return
            logger.info("🔄 Intentando reconectar...")
            if not self.transport.is_bound and not self._open():
                return
            self._send_start()

    def _handle_connection_loss(self, error: Exception):
        if self.state is ConnectionState.CONNECTED:
            self.state = ConnectionState.DISCONNECTED
            self.cache.set_connected(False)
            self._last_published = None
            logger.warning(f"⚠️ Conexión perdida ({error}), intentando reconectar...")
            self._publish(ConnectivityChanged(connected=False))
        else:
            logger.warning(f"⚠️ Báscula no disponible: {error}")
        self.reconnect()

    # ------------------------------------------------------------------
    # Auxiliares
    # ------------------------------------------------------------------

    def _open(self) -> bool:
        try:
            self.transport.bind()
            return True
        except TransportError as e:
            logger.error(f"❌ {e}")
            self._events.put(ConnectionLost(error=e))
            return False

    def _send_start(self) -> bool:
        self._last_start_sent_at = self._clock()
        if self.config.debug:
            logger.debug(f"Enviando START: {START_FRAME.hex()}")
        try:
            self.transport.send(START_FRAME, self.config.scale_endpoint)
        except TransportError as e:
            logger.error(f"❌ Error al enviar START: {e}")
            self._events.put(ConnectionLost(error=e))
            return False
        logger.info("Comando START enviado, esperando streaming de peso...")
        return True

    def _send_stop(self):
        if self.config.debug:
            logger.debug(f"Enviando STOP: {STOP_FRAME.hex()}")
        try:
            self.transport.send(STOP_FRAME, self.config.scale_endpoint)
        except TransportError as e:
            logger.warning(f"⚠️ No se pudo enviar STOP: {e}")
            return
        logger.info("Comando STOP enviado")

    def _publish(self, event: WeightEvent):
        try:
            self.sink.publish(event)
        except Exception as e:
            logger.error(f"Error al publicar evento {type(event).__name__}: {e}")

    def _cancel_timers(self):
        self.monitor.stop()
        with self._reconnect_lock:
            timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()

    def _join_threads(self):
        self._events.put(Shutdown())
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)
        self._threads = []

    def _shutdown_step(self, name: str, fn, *args):
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"Error al {name}: {e}")
