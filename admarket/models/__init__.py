from admarket.models.user import User
from admarket.models.channel import Channel, ChannelAdFormat, ChannelRole
from admarket.models.post import Post
from admarket.models.deal import Deal

__all__ = [
    "User",
    "Channel",
    "ChannelRole",
    "ChannelAdFormat",
    "Post",
    "Deal",
]
