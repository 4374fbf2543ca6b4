"""Render audit-log harvester.

Pulls workspace and organization audit logs from the Render API with cursor
pagination, splits each page into calendar-day batches, and stores the
batches as gzipped JSON in S3, resuming from a per-identity checkpoint.
"""
