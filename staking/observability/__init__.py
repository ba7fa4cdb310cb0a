# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides prometheus metrics for reward pools and the pool factory.
"""

from .metrics import metrics_registry, register_event_metrics, update_pool_metrics

__all__ = ['metrics_registry', 'register_event_metrics', 'update_pool_metrics']
