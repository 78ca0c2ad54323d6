"""Message bus monitor - prints classifier results and session status."""
import logging

from src.core.message_bus import PREDICTION_PORT, PREDICTION_TOPIC, MessageBus

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

bus = MessageBus()
sub = bus.create_subscriber([PREDICTION_PORT])

print('=== Sound Demo Bus Monitor ===')
print(f'Listening on port {PREDICTION_PORT} (prediction, status)')
print('Ctrl+C to exit\n')

prediction_count = 0
while True:
    result = bus.receive(sub, timeout_ms=100)
    if result:
        topic, envelope = result
        data = envelope['data']
        if topic == PREDICTION_TOPIC:
            prediction_count += 1
            top = data['results'][0]
            print(f"[PREDICTION #{prediction_count}] {top['label']} {top['confidence'] * 100:.1f}%")
        else:
            print(f'[{topic.upper()}] {data}')
