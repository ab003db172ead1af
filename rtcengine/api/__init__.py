"""HTTP API for rtc-engine."""
