"""Core building blocks — constants, errors, config, logging, cancellation, telemetry."""
