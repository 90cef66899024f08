"""
dynamo-migrate: resumable, idempotent migration of DynamoDB S3 exports into PostgreSQL.
"""

__version__ = "0.1.0"
