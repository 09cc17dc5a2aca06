"""
Test support for cache-sync tests.

- ``fake_redis``: in-memory redis client with pipelines and fault injection
- ``source_db``: SQLite rendition of the relational source schema
"""
