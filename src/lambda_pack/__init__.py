"""Build and validate deployable serverless function archives."""

__version__ = "0.1.0"
