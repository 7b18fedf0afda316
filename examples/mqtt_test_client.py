#!/usr/bin/env python3
"""
Cliente de prueba MQTT: muestra los eventos de la báscula y pide un snapshot.
"""

import json
import sys
import time

import paho.mqtt.client as mqtt


class TestClient:
    """Cliente MQTT de prueba."""

    def __init__(self, broker="localhost", port=1883, scale_id="scale-1",
                 prefix="pesanet/scales"):
        """
        Inicializa el cliente de prueba.

        Args:
            broker: Dirección del broker MQTT
            port: Puerto del broker
            scale_id: ID de la báscula a observar
            prefix: Prefijo de los tópicos
        """
        self.broker = broker
        self.port = port
        base = f"{prefix}/{scale_id}"
        self.event_topic = f"{base}/+"
        self.command_topic = f"{base}/command"
        self.response_topic = f"{base}/response"

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id="scale-bridge-test-client",
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.response_received = False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code == 0:
            print(f"✅ Conectado al broker MQTT en {self.broker}:{self.port}")
            client.subscribe(self.event_topic)
            print(f"✅ Suscrito a: {self.event_topic}\n")
        else:
            print(f"❌ Error al conectar: {reason_code}")
            sys.exit(1)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje recibido."""
        if msg.topic == self.command_topic:
            return

        print(f"📨 {msg.topic}:")
        try:
            data = json.loads(msg.payload.decode('utf-8'))
            print(json.dumps(data, indent=2))
            print()
        except json.JSONDecodeError as e:
            print(f"❌ Error al parsear JSON: {e}")
            print(f"Payload raw: {msg.payload}")

        if msg.topic == self.response_topic:
            self.response_received = True

    def request_snapshot(self):
        """Envía el comando get_weight."""
        payload_str = json.dumps({"command": "get_weight"})
        print(f"📤 Enviando comando a {self.command_topic}: {payload_str}\n")
        result = self.client.publish(self.command_topic, payload_str, qos=1)

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            print("✅ Comando enviado correctamente")
        else:
            print(f"❌ Error al enviar comando, código: {result.rc}")

    def run_test(self, listen_seconds: float):
        """Escucha eventos y pide un snapshot."""
        print("=== Cliente de Prueba MQTT ===\n")

        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except Exception as e:
            print(f"❌ Error al conectar: {e}")
            sys.exit(1)

        self.client.loop_start()
        time.sleep(1)

        self.request_snapshot()

        print(f"\n⏳ Escuchando eventos durante {listen_seconds:.0f}s...\n")
        time.sleep(listen_seconds)

        if not self.response_received:
            print("❌ Timeout: No se recibió respuesta a get_weight")

        self.client.loop_stop()
        self.client.disconnect()
        print("\n✅ Test completado")


def main():
    """Función principal."""
    import argparse

    parser = argparse.ArgumentParser(description="Cliente de prueba MQTT")
    parser.add_argument("--broker", default="localhost",
                        help="Dirección del broker MQTT (default: localhost)")
    parser.add_argument("--port", type=int, default=1883,
                        help="Puerto del broker (default: 1883)")
    parser.add_argument("--scale-id", default="scale-1",
                        help="ID de la báscula (default: scale-1)")
    parser.add_argument("--listen", type=float, default=10,
                        help="Segundos escuchando eventos (default: 10)")

    args = parser.parse_args()

    client = TestClient(args.broker, args.port, args.scale_id)
    client.run_test(args.listen)


if __name__ == "__main__":
    main()
