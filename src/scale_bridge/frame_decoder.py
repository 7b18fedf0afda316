"""Decodificación de tramas de la báscula y vocabulario de control."""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from .exceptions import FrameTooShortError, InvalidNumberError
from .models import WeightReading

STX = 0x02
ETX = 0x03

# Tramas más cortas que esto no son datos de peso (p. ej. acks de control)
MIN_DATA_FRAME_LEN = 41
LEADING_BYTES = 1
TRAILING_BYTES = 4
MIN_PAYLOAD_LEN = 37

# Offsets dentro del payload (inicio inclusivo, fin exclusivo)
GROSS_FIELD = slice(12, 20)
UNIT_FIELD = slice(20, 22)
TARE_FIELD = slice(23, 31)

# Comando de control: dirección + comando, seguido del dígito de streaming
CONTROL_PREFIX = b"00FFE101"
CONTROL_SUFFIX = b"0000"
CONTROL_COMMANDS = {
    "start": b"1",
    "stop": b"0",
}


def build_control_frame(command: str) -> bytes:
    """
    Construye una trama de control de 17 bytes.

    Formato: STX, "00FFE101", dígito de streaming, "0000", ETX, CR, LF.

    Args:
        command: Nombre del comando ("start" o "stop")

    Raises:
        ValueError: Si el comando no existe
    """
    flag = CONTROL_COMMANDS.get(command)
    if flag is None:
        raise ValueError(
            f"Comando de control no soportado: '{command}'. "
            f"Comandos disponibles: {list(CONTROL_COMMANDS)}"
        )
    return (
        bytes([STX]) + CONTROL_PREFIX + flag + CONTROL_SUFFIX
        + bytes([ETX]) + b"\r\n"
    )


START_FRAME = build_control_frame("start")
STOP_FRAME = build_control_frame("stop")


def _parse_number(payload: bytes, field: slice, name: str) -> Decimal:
    text = payload[field].decode("ascii", errors="replace").strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidNumberError(f"Campo {name} no numérico: {text!r}") from None
    if not value.is_finite():
        raise InvalidNumberError(f"Campo {name} no finito: {text!r}")
    return value


def decode_frame(
    frame: bytes,
    captured_at: Optional[datetime] = None,
) -> Optional[WeightReading]:
    """
    Decodifica una trama de datos de la báscula.

    La trama se recorta 1 byte al inicio y 4 al final; los campos se leen
    en offsets fijos del payload resultante.

    Args:
        frame: Bytes crudos recibidos por UDP
        captured_at: Instante de captura (por defecto, ahora en UTC)

    Returns:
        La lectura de peso, o None si la trama no es de datos (<= 40 bytes)

    Raises:
        FrameTooShortError: Si el payload tiene menos de 37 bytes
        InvalidNumberError: Si el peso bruto o la tara no son numéricos
    """
    if len(frame) < MIN_DATA_FRAME_LEN:
        return None

    payload = frame[LEADING_BYTES:len(frame) - TRAILING_BYTES]
    if len(payload) < MIN_PAYLOAD_LEN:
        raise FrameTooShortError(
            f"Payload demasiado corto: {len(payload)} bytes "
            f"(mínimo {MIN_PAYLOAD_LEN})"
        )

    gross = _parse_number(payload, GROSS_FIELD, "bruto")
    tare = _parse_number(payload, TARE_FIELD, "tara")
    unit = payload[UNIT_FIELD].decode("ascii", errors="replace").strip()

    return WeightReading(
        gross=gross,
        tare=tare,
        unit=unit,
        captured_at=captured_at or datetime.now(timezone.utc),
    )


def format_frame_trace(frame: bytes, source=None) -> str:
    """Volcado hex + ASCII de una trama para el modo --debug."""
    ascii_text = "".join(chr(b) if 32 <= b < 127 else "." for b in frame)
    origin = f" desde {source[0]}:{source[1]}" if source else ""
    return (
        f"Trama{origin} ({len(frame)} bytes)\n"
        f"  Hex:   {frame.hex()}\n"
        f"  ASCII: {ascii_text}"
    )
