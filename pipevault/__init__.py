"""PipeVault capacity allocation and shipment lifecycle engine."""

__version__ = "0.1.0"
