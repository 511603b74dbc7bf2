"""Data input/output helpers (CSV exports, JSONL samples and file paths).

Utility modules here keep text and disk-level concerns isolated from the
pipeline:
- :mod:`csv_export` renders sample collections as chunked CSV exports.
- :mod:`csv_writer` saves finished exports.
- :mod:`export_loader` parses exports back for verification and review.
- :mod:`sample_loader` reads and writes JSON-lines sample recordings.
- :mod:`file_paths` centralises export file naming.
"""
