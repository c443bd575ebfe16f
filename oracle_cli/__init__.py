"""
oracle-cli: acquire Steam unlock descriptors and manifests from community
repositories and keep the local library in sync with what is on disk.
"""

__version__ = "1.2.0"
