"""Adapters — external integrations for the access governance engine.

Contains:
- memory.py — in-memory stores, recording event sink and outbox
- kafka.py  — KafkaEventSink (aiokafka)
- email.py  — HttpEmailSender (httpx)
"""

__all__: list[str] = []
