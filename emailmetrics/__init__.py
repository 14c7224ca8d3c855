"""
Email Metrics Snapshot Package.

FastAPI service layer that turns uploaded email-platform CSV exports
(campaigns, flows, subscribers) into aggregate snapshot documents for the
dashboard and for public share links.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, object storage and dependencies
    - models: Pydantic schemas and enums
    - services: Parsing, aggregation, storage resolution and sharing
    - jobs: Scheduled maintenance jobs
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
