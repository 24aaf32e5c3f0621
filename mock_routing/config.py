# mock_routing/config.py
# Pre-defined simulator settings
import os


def config_basic():
    return {
        "network_delay_ms": int(os.getenv("MOCK_ROUTING_DELAY_MS", "1000")),
        "jitter_ms": int(os.getenv("MOCK_ROUTING_JITTER_MS", "0")),  # 0 keeps delivery timing deterministic
    }


def config_instant():
    c = config_basic()
    c["network_delay_ms"] = 0
    c["jitter_ms"] = 0
    return c


def config_jittery():
    c = config_basic()
    c["network_delay_ms"] = 20
    c["jitter_ms"] = 30  # deliveries may overtake each other
    return c
