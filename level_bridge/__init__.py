"""Level bridge: MQTT → history/alerts/push for liquid-level projects."""

__version__ = "1.0.0"
