"""
Real-time monitoring of quiz activity over WebSockets.
"""

from edusync.realtime.manager import WebSocketManager

__all__ = ["WebSocketManager"]
