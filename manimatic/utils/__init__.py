"""HTTP, throttling and logging helpers."""
