"""TOR IoT endpoint modules (internal)."""
