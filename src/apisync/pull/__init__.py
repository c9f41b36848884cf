"""Pull of remote records into local entities."""

from apisync.pull.delete import DeleteHandler, DeleteProvider
from apisync.pull.handler import PullQueueHandler
from apisync.pull.queue import PullQueue
from apisync.pull.worker import PullWorker

__all__ = [
    "DeleteHandler",
    "DeleteProvider",
    "PullQueue",
    "PullQueueHandler",
    "PullWorker",
]
