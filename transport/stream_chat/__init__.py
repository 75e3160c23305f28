"""
Stream Chat Transport Module

Pure I/O layer for Stream Chat.
Exports: StreamChatClient, StreamChannelTransport, StreamChatError
"""

from transport.stream_chat.client import StreamChatClient, StreamChatError, split_cid
from transport.stream_chat.channel import StreamChannelTransport

__all__ = [
    "StreamChatClient",
    "StreamChatError",
    "StreamChannelTransport",
    "split_cid",
]
