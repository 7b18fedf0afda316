"""Excepciones del enlace con la báscula."""


class ScaleBridgeError(Exception):
    """Error base del puente de báscula."""


class TransportError(ScaleBridgeError):
    """Fallo del socket UDP (bind o envío). Dispara el camino de reconexión."""


class StaleConnectionError(ScaleBridgeError):
    """La báscula dejó de responder dentro del tiempo permitido."""


class DecodeError(ScaleBridgeError, ValueError):
    """Trama de datos inválida. La trama se descarta sin cambiar el estado."""


class FrameTooShortError(DecodeError):
    """El payload de la trama tiene menos bytes de los necesarios."""


class InvalidNumberError(DecodeError):
    """Un campo numérico de la trama no contiene un número válido."""
