from .twitter_streamer import StreamState, TwitterStreamer

__all__ = ["StreamState", "TwitterStreamer"]
