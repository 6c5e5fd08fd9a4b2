"""VitalSync — correlate biometric and facial-emotion telemetry into one live time series."""

__version__ = "0.1.0"
