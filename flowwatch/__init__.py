"""Wallet flow monitor: classifies on-chain trades and tracks observed positions."""

__version__ = "1.0.0"
