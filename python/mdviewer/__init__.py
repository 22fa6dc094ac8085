"""
mdviewer - Markdown viewer back end with remote file access

Opens markdown documents from the local disk or over SSH/SFTP, SMB and NFS,
and keeps the open document live: local files through OS change events,
remote files through a poll-then-verify change detector with bounded
reconnect retries.
"""

__version__ = "0.1.0"

# DO NOT import submodules here - asyncssh/smbprotocol imports are slow and
# only needed once a remote target is actually opened.

__all__ = ["__version__"]
