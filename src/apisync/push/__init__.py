"""Push of local entity changes to the remote service."""

from apisync.push.processor import QueueProcessor, RestProcessor
from apisync.push.queue import PushQueue
from apisync.push.trigger import PushTrigger
from apisync.push.worker import PushWorker

__all__ = [
    "PushQueue",
    "PushTrigger",
    "PushWorker",
    "QueueProcessor",
    "RestProcessor",
]
