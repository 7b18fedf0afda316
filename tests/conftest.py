"""Fixtures compartidas de los tests."""

from unittest.mock import MagicMock

import pytest

from scale_bridge.config import LinkSessionConfig
from scale_bridge.link_session import LinkSession
from scale_bridge.sink import BroadcastSink
from scale_bridge.transport import UDPTransport


def build_frame(gross: str, tare: str, unit: str = "kg") -> bytes:
    """
    Construye una trama de datos como la que emite la báscula.

    Payload de 37 bytes: cabecera (12), bruto (8), unidad (2), separador (1),
    tara (8) y relleno (6); más STX al inicio y 4 bytes de cierre.
    """
    payload = (
        "00FFE1010000"
        + gross.rjust(8)
        + unit.ljust(2)
        + " "
        + tare.rjust(8)
        + "000000"
    )
    return b"\x02" + payload.encode("ascii") + b"\x0300\r"


class FakeClock:
    """Reloj monotónico controlado por el test."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def link_config():
    """Configuración del enlace con valores por defecto."""
    return LinkSessionConfig(scale_address="192.168.4.1")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    """Sink que registra los eventos publicados."""
    return MagicMock(spec=BroadcastSink)


@pytest.fixture
def transport():
    """Socket UDP simulado y ya enlazado."""
    mock = MagicMock(spec=UDPTransport)
    mock.is_bound = True
    return mock


@pytest.fixture
def timer_factory():
    """Fábrica de timers que no dispara sola."""
    return MagicMock()


@pytest.fixture
def session(link_config, sink, transport, clock, timer_factory):
    """Sesión procesada de forma síncrona en el hilo del test."""
    return LinkSession(
        link_config,
        sink,
        transport=transport,
        clock=clock,
        timer_factory=timer_factory,
        sleep=MagicMock(),
    )


def fire_timer(timer_factory, index: int = -1):
    """Ejecuta el callback del timer creado en la llamada `index`."""
    call = timer_factory.call_args_list[index]
    callback = call.args[1]
    callback(*call.kwargs.get("args", ()))


def published(sink, event_type):
    """Eventos de un tipo publicados en el sink."""
    return [
        c.args[0] for c in sink.publish.call_args_list
        if isinstance(c.args[0], event_type)
    ]
