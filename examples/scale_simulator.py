#!/usr/bin/env python3
"""
Simulador de báscula UDP para pruebas.
Escucha comandos START/STOP y, en modo streaming, envía tramas de peso
al puerto de recepción del puente.
"""

import random
import socket
import sys
import time
from argparse import ArgumentParser, Namespace

START_FRAME = bytes([
    0x02, 0x30, 0x30, 0x46, 0x46, 0x45, 0x31, 0x30, 0x31,
    0x31, 0x30, 0x30, 0x30, 0x30, 0x03, 0x0D, 0x0A,
])
STOP_FRAME = START_FRAME[:9] + b"0" + START_FRAME[10:]


def build_frame(gross: float, tare: float, unit: str = "kg") -> bytes:
    """
    Formatea una trama como la de la báscula real.

    Args:
        gross: Peso bruto
        tare: Tara
        unit: Código de unidad (2 caracteres)
    """
    payload = (
        "00FFE1010000"
        + f"{gross:8.3f}"
        + unit.ljust(2)
        + " "
        + f"{tare:8.3f}"
        + "000000"
    )
    return b"\x02" + payload.encode("ascii") + b"\x0300\r"


def simulate_scale(sock: socket.socket, bridge_port: int, random_mode: bool,
                   fixed_weight: float, interval: float):
    """
    Atiende comandos y emite pesos mientras el streaming está activo.

    Args:
        sock: Socket enlazado al puerto de comandos de la báscula
        bridge_port: Puerto donde escucha el puente
    """
    streaming_to = None
    sock.settimeout(interval)
    print("Simulador de báscula iniciado, esperando START...")

    try:
        while True:
            try:
                data, addr = sock.recvfrom(64)
                if data == START_FRAME:
                    streaming_to = (addr[0], bridge_port)
                    print(f"▶️  START recibido de {addr[0]}, enviando a {streaming_to}")
                elif data == STOP_FRAME:
                    print(f"⏹️  STOP recibido de {addr[0]}")
                    streaming_to = None
                else:
                    print(f"Comando desconocido: {data!r}")
            except socket.timeout:
                pass

            if streaming_to is None:
                continue

            if random_mode:
                weight = random.uniform(0, 150)
            else:
                weight = fixed_weight
            sock.sendto(build_frame(weight, 0.0), streaming_to)
            print(f"Enviado: {weight:.3f} kg")

    except KeyboardInterrupt:
        print("\nSimulador detenido")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Simulador de báscula UDP para pruebas.")
    parser.add_argument(
        "--random",
        action="store_true",
        help="Si se establece, envía pesos aleatorios en lugar de un peso fijo.",
    )
    parser.add_argument(
        "--weight",
        type=float,
        default=0.162,
        help="Peso fijo a enviar cuando no se usa modo aleatorio. Por defecto 0.162 kg.",
    )
    parser.add_argument(
        "--command-port",
        type=int,
        default=4444,
        help="Puerto donde la báscula recibe comandos (default: 4444).",
    )
    parser.add_argument(
        "--bridge-port",
        type=int,
        default=5555,
        help="Puerto donde escucha el puente (default: 5555).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Segundos entre tramas de peso (default: 1.0).",
    )
    return parser


def parse_args(argv: list[str]) -> Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Función principal."""
    args = parse_args(argv if argv is not None else sys.argv[1:])

    print("=== Simulador de Báscula UDP ===\n")

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("0.0.0.0", args.command_port))
    print(f"Escuchando comandos en el puerto {args.command_port}")
    print("\nUsa esta IP en la configuración:")
    print("  export SCALE_IP=127.0.0.1\n")
    print("Presiona Ctrl+C para detener\n")

    try:
        simulate_scale(sock, args.bridge_port, args.random, args.weight, args.interval)
    finally:
        sock.close()


if __name__ == "__main__":
    main()
