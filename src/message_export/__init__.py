from message_export.core.engine import MessageExporter
from message_export.core.errors import ErrorKind, ExportError, ExportFailure
from message_export.core.iterator import ResumableIterator
from message_export.core.models import CountResult, ExportResult, FetchStrategy, Message, MessageKind, Thread
from message_export.core.policies import CancellationToken, RetryPolicy

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "CountResult",
    "ErrorKind",
    "ExportError",
    "ExportFailure",
    "ExportResult",
    "FetchStrategy",
    "Message",
    "MessageExporter",
    "MessageKind",
    "ResumableIterator",
    "RetryPolicy",
    "Thread",
]
