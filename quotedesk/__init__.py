"""QuoteDesk — quote evaluation and workflow reconciliation for insurance brokers."""

__version__ = "0.1.0"
