"""Socket UDP hacia la báscula."""

import logging
import socket
from typing import Optional

from .exceptions import TransportError

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 2048


class UDPTransport:
    """
    Socket UDP único para enviar comandos y recibir tramas de la báscula.

    Args:
        bind_address: Dirección local donde escuchar
        port: Puerto local de recepción
    """

    def __init__(self, bind_address: str = "0.0.0.0", port: int = 5555):
        self.bind_address = bind_address
        self.port = port
        self._sock: Optional[socket.socket] = None

    @property
    def is_bound(self) -> bool:
        return self._sock is not None

    def bind(self) -> None:
        """Crea el socket y lo enlaza al puerto de recepción."""
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.bind_address, self.port))
        except OSError as e:
            sock.close()
            raise TransportError(
                f"No se pudo enlazar {self.bind_address}:{self.port}: {e}"
            ) from e
        self._sock = sock
        logger.info(f"Escuchando en {self.bind_address}:{self.port}")

    def send(self, data: bytes, address: tuple) -> None:
        """
        Envía un datagrama.

        Raises:
            TransportError: Si el socket no está enlazado o el envío falla
        """
        if self._sock is None:
            raise TransportError("Socket UDP no enlazado")
        try:
            self._sock.sendto(data, address)
        except OSError as e:
            raise TransportError(
                f"Error al enviar a {address[0]}:{address[1]}: {e}"
            ) from e

    def recv(self, timeout_s: float) -> Optional[tuple[bytes, tuple]]:
        """
        Recibe un datagrama con timeout.

        Returns:
            (datos, dirección origen), o None si vence el timeout o el
            socket está cerrado
        """
        sock = self._sock
        if sock is None:
            return None
        try:
            sock.settimeout(timeout_s)
            return sock.recvfrom(MAX_DATAGRAM)
        except socket.timeout:
            return None
        except OSError as e:
            # Cerrado desde otro hilo durante el apagado
            if self._sock is None:
                return None
            logger.warning(f"⚠️ Error al recibir datagrama: {e}")
            return None

    def close(self) -> None:
        """Cierra el socket."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
            logger.info("Socket UDP cerrado")

    def __enter__(self):
        """Context manager entry."""
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
