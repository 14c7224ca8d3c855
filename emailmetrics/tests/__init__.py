'''
Email Metrics Test Suite

Test Modules:
-------------
- test_csv_parser.py: CSV parsing and normalization
  - Numeric coercion and clamping
  - Date formats (US, two-digit years, epochs, ISO)
  - Header alias resolution, ragged rows, BOMs, preambles

- test_aggregator.py: Metric aggregation
  - Totals and derived rates with zero denominators
  - Audience consent matching
  - Flow / campaign rollups and time buckets

- test_snapshot_builder.py: Snapshot assembly and service
  - Compare ranges
  - Section presence and payload shape
  - Build / process against in-memory storage

- test_storage_locator.py: Storage path locator
  - Every search step, bucket priority
  - Transient failures and timeouts
  - Listing memoization

- test_share_tokens.py: Share resolution and management
- test_share_cleanup.py: Expired share cleanup job
- test_api.py: HTTP endpoints through FastAPI's TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest emailmetrics/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and in-memory fakes.
'''

__all__ = []
