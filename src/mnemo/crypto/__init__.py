"""Searchable encryption: AES-256-GCM content plus HMAC blind indexes.

The key is generated once and kept owner-only at the configured key path;
the HMAC key is derived from it on demand and never written to disk.
"""
