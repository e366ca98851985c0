"""
Backend CipherGenix: integrity detection engine for deployed AI models.

Scores datasets for poisoning, inference inputs for adversarial perturbation,
running models for drift and tampering, and query logs for extraction attempts.
Continuous monitoring sessions poll model snapshots and emit alerts.
"""

__version__ = "0.1.0"
