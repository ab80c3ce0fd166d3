"""
asyncssh adapters for the relay engine.
"""

from .session import SSHSession, map_connect_error
from .sftp import FileTransferRelay, PendingOperation, normalize_list_path

__all__ = [
    'SSHSession',
    'map_connect_error',
    'FileTransferRelay',
    'PendingOperation',
    'normalize_list_path',
]
