# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports migration progress metrics in Prometheus format.

Metrics:
- Trie nodes and code blobs written, bytes written, batch flushes
- Code deduplication cache hits
- Retention scan progress
- Verification results
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# COPY METRICS
# ═══════════════════════════════════════════════════════════════════

nodes_copied_total = Counter(
    'triecopy_nodes_copied_total',
    'Trie nodes queued for the destination store',
    ['trie'],
    registry=metrics_registry
)

code_blobs_copied_total = Counter(
    'triecopy_code_blobs_copied_total',
    'Contract code blobs copied to the destination store',
    registry=metrics_registry
)

code_cache_hits_total = Counter(
    'triecopy_code_cache_hits_total',
    'Code blob copies skipped by the deduplication cache',
    registry=metrics_registry
)

accounts_visited_total = Counter(
    'triecopy_accounts_visited_total',
    'Account leaves decoded during a copy',
    registry=metrics_registry
)

bytes_written_total = Counter(
    'triecopy_bytes_written_total',
    'Bytes written to the destination store',
    registry=metrics_registry
)

batch_flushes_total = Counter(
    'triecopy_batch_flushes_total',
    'Write batches flushed to the destination store',
    registry=metrics_registry
)

roots_persisted_total = Counter(
    'triecopy_roots_persisted_total',
    'Root nodes persisted after their content was flushed',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# SCAN METRICS
# ═══════════════════════════════════════════════════════════════════

blocks_scanned_total = Counter(
    'triecopy_blocks_scanned_total',
    'Blocks visited by the retention scanner',
    registry=metrics_registry
)

latest_root_number = Gauge(
    'triecopy_latest_root_number',
    'Block number of the most recent fully-present state root',
    registry=metrics_registry
)

backup_number = Gauge(
    'triecopy_backup_number',
    'First block of the copied backup range',
    registry=metrics_registry
)

snapshots_copied_total = Counter(
    'triecopy_snapshots_copied_total',
    'Consensus snapshot blobs copied verbatim',
    registry=metrics_registry
)

snapshots_skipped_total = Counter(
    'triecopy_snapshots_skipped_total',
    'Malformed consensus snapshot blobs skipped',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# VERIFICATION METRICS
# ═══════════════════════════════════════════════════════════════════

addresses_checked_total = Counter(
    'triecopy_addresses_checked_total',
    'Addresses compared between source and destination',
    registry=metrics_registry
)

address_mismatches_total = Counter(
    'triecopy_address_mismatches_total',
    'Addresses whose state differs between source and destination',
    ['reason'],
    registry=metrics_registry
)


def update_plan_metrics(plan):
    """
    Update scan gauges from a retention plan.

    Args:
        plan: RetentionPlan chosen by the scanner
    """
    latest_root_number.set(plan.latest.block_number)
    backup_number.set(plan.backup_number)


def record_mismatch(reason):
    """
    Count one mismatching address.

    Args:
        reason: MismatchReason of the first failed check
    """
    address_mismatches_total.labels(reason=reason.value).inc()
