"""Plaintext memory core — partitions, store, ranking, timeline, maintenance.

Layout:
    <data_lake>/                          # default ~/.mnemo/data-lake
    ├── memory-general/
    │   └── bridge.db                     # one SQLite partition per project
    └── memory-<project>/
        └── bridge.db                     # created lazily, directory mode 0700

Each partition holds ``memories`` plus the ``encrypted_memories`` and
``blind_indexes`` tables used by ``mnemo.crypto``.
"""
