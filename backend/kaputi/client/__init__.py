from .connection import ConnectionManager, ConnectionState, Message

__all__ = ['ConnectionManager', 'ConnectionState', 'Message']
