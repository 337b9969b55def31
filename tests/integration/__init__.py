"""
Integration tests for relaymigrator.

These tests use file-backed SQLite databases created under pytest's tmp_path.
"""
