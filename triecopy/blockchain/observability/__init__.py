# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides metrics for migration and verification runs.
"""

from .metrics import metrics_registry, update_plan_metrics, record_mismatch

__all__ = ['metrics_registry', 'update_plan_metrics', 'record_mismatch']
