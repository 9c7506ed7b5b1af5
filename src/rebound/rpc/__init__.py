"""RPC between the serving process and the build pipeline.

``channel`` moves frames, ``peer`` correlates calls with replies. The
serving side never builds anything; it asks the builder for the latest
build over this channel.
"""

from rebound.rpc.channel import (
    Channel,
    LoopbackChannel,
    StreamChannel,
    loopback_pair,
    open_channel,
    serve_channel,
)
from rebound.rpc.peer import RpcPeer

__all__ = [
    "Channel",
    "LoopbackChannel",
    "RpcPeer",
    "StreamChannel",
    "loopback_pair",
    "open_channel",
    "serve_channel",
]
