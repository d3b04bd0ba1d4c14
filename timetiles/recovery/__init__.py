"""Failure classification, retry scheduling and quota checks for import jobs."""
