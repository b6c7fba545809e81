"""
Commit ingestion: GitHub commit log -> summarized commit rows.
"""
