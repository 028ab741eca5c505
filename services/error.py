from contextlib import contextmanager
import sys
import traceback
import services.logger as log

l = log.get_logger()


class ChatTapError(Exception):
    """Base class for every error raised by ChatTap."""


class ChatFetchError(ChatTapError):
    """A chat snapshot could not be obtained for *video_id*.

    This is the one error kind the poll loop reports; the subclasses keep the
    transport / parse distinction for diagnostics.
    """

    def __init__(self, message: str, video_id: str = ""):
        super().__init__(message)
        self.video_id = video_id


class ChatTransportError(ChatFetchError):
    """Network failure or non-success HTTP status from the chat page."""

    def __init__(self, message: str, video_id: str = "", status: int | None = None):
        super().__init__(message, video_id)
        self.status = status


class ChatParseError(ChatFetchError):
    """The chat page did not contain the expected embedded data."""


class MessageShapeError(ChatTapError):
    """A single chat action could not be turned into a ChatMessage."""


class ObserverError(ChatTapError):
    """A registered observer raised while handling a message."""

    def __init__(self, observer, message):
        name = getattr(observer, "__qualname__", None) or repr(observer)
        super().__init__(f"Observer {name} failed on message {message.id!r}")
        self.observer = observer
        self.message = message


def _handle_uncaught_exceptions(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    l.critical(
        "Unhandled exception caught:\n"
        + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    )


def install_excepthook():
    sys.excepthook = _handle_uncaught_exceptions


def raise_and_log(message: str, exception_type: type = ChatTapError):
    """
    Log an error and then raise the specified exception.

    :param message: Error message to log and include in the exception.
    :param exception_type: Type of exception to raise (default: ChatTapError).
    """
    l.error(f"Raising exception: {message}")
    raise exception_type(message)


@contextmanager
def catch_and_log(context_info: str = ""):
    """
    Log any exception escaping the block with *context_info*, then re-raise.

    :param context_info: Optional context info to include in the log.
    """
    try:
        yield
    except Exception as e:
        l.error(f"Exception caught in context '{context_info}': {e}")
        raise
