import asyncio
import logging
import typing as t
from dataclasses import dataclass

import grpclib.client
from google.protobuf import message as _message
from grpclib.const import Status
from grpclib.exceptions import GRPCError
from grpclib.exceptions import ProtocolError
from grpclib.exceptions import StreamTerminatedError

from .credentials import CallCredentials
from .credentials import MetadataContext
from .credentials import MetadataGeneratorError
from .metadata import Metadata
from .schema import MethodDefinition


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallStatus:
    code: Status
    details: t.Optional[str]
    metadata: Metadata


@dataclass(frozen=True)
class InitialMetadataReceived:
    metadata: Metadata


@dataclass(frozen=True)
class CallCompleted:
    error: t.Optional[GRPCError]
    response: t.Any


@dataclass(frozen=True)
class StatusReceived:
    status: CallStatus


CallEvent = t.Union[InitialMetadataReceived, CallCompleted, StatusReceived]

MetadataHandler = t.Callable[[Metadata], None]
StatusHandler = t.Callable[[CallStatus], None]
CompletionCallback = t.Callable[[t.Optional[GRPCError], t.Any], None]


class PendingCall:
    """A unary call in flight.

    Events fire from the call's task in a fixed order: initial metadata (if
    the server sent any), then completion, then status. Handlers registered
    after an event fired are not replayed for it.
    """

    def __init__(
        self,
        channel: grpclib.client.Channel,
        method: MethodDefinition,
        request: _message.Message,
        *,
        service_url: str,
        metadata: t.Optional[Metadata] = None,
        credentials: t.Optional[CallCredentials] = None,
        timeout: t.Optional[float] = None,
        callback: t.Optional[CompletionCallback] = None,
        convert_reply: bool = True,
    ) -> None:
        self._channel = channel
        self._method = method
        self._request = request
        self._service_url = service_url
        self._metadata = metadata.copy() if metadata is not None else Metadata()
        self._credentials = credentials
        self._timeout = timeout
        self._convert_reply = convert_reply
        self._loop = asyncio.get_event_loop()

        self._metadata_handlers: t.List[MetadataHandler] = []
        self._status_handlers: t.List[StatusHandler] = []
        self._completion_handlers: t.List[CompletionCallback] = []
        if callback is not None:
            self._completion_handlers.append(callback)

        self.events: t.List[CallEvent] = []
        self.initial_metadata: t.Optional[Metadata] = None
        self.status: t.Optional[CallStatus] = None
        self._response: t.Any = None
        self._error: t.Optional[GRPCError] = None
        self._cancelled = False
        self._completed = False

        self._task = self._loop.create_task(self._run())

    @property
    def method(self) -> MethodDefinition:
        return self._method

    def on_metadata(self, handler: MetadataHandler) -> "PendingCall":
        self._metadata_handlers.append(handler)
        return self

    def on_status(self, handler: StatusHandler) -> "PendingCall":
        self._status_handlers.append(handler)
        return self

    def on_complete(self, handler: CompletionCallback) -> "PendingCall":
        self._completion_handlers.append(handler)
        return self

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """Cancels the call; no events fire after this returns ``True``.

        A call whose completion already fired can no longer be cancelled.
        """
        if self._cancelled or self._completed or self._task.done():
            return False
        self._cancelled = True
        self._task.cancel()
        log.debug("Cancelled %s", self._method.path)
        return True

    async def wait(self) -> t.Any:
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
        if self._cancelled:
            raise GRPCError(Status.CANCELLED, "Cancelled on client")
        if self._error is not None:
            raise self._error
        return self._response

    def __await__(self) -> t.Generator[t.Any, None, t.Any]:
        return self.wait().__await__()

    def _dispatch(self, handlers: t.Sequence[t.Callable[..., None]], *args: t.Any) -> None:
        for handler in list(handlers):
            if self._cancelled:
                return
            try:
                handler(*args)
            except Exception as exc:
                self._loop.call_exception_handler({
                    "message": "Unhandled exception in handler of {}".format(
                        self._method.path
                    ),
                    "exception": exc,
                    "call": self,
                })

    def _emit(self, event: CallEvent) -> None:
        if self._cancelled:
            return
        self.events.append(event)
        if isinstance(event, InitialMetadataReceived):
            self.initial_metadata = event.metadata
            self._dispatch(self._metadata_handlers, event.metadata)
        elif isinstance(event, CallCompleted):
            self._completed = True
            self._dispatch(self._completion_handlers, event.error, event.response)
        else:
            self.status = event.status
            self._dispatch(self._status_handlers, event.status)

    async def _outgoing_metadata(self) -> Metadata:
        metadata = self._metadata.copy()
        if self._credentials is not None:
            context = MetadataContext(
                service_url=self._service_url,
                method_name=self._method.name,
            )
            metadata.merge(await self._credentials.generate_metadata(context))
        return metadata

    async def _run(self) -> None:
        stream: t.Optional[grpclib.client.Stream[t.Any, t.Any]] = None
        error: t.Optional[GRPCError] = None
        reply = None
        log.debug("Starting %s", self._method.path)
        try:
            metadata = await self._outgoing_metadata()
            async with self._channel.request(
                self._method.path,
                self._method.cardinality,
                self._method.request_type,
                self._method.reply_type,
                timeout=self._timeout,
                metadata=metadata.items(),
            ) as stream:
                await stream.send_message(self._request, end=True)
                await stream.recv_initial_metadata()
                if stream.initial_metadata is not None:
                    self._emit(InitialMetadataReceived(
                        Metadata.from_multidict(stream.initial_metadata),
                    ))
                reply = await stream.recv_message()
                await stream.recv_trailing_metadata()
        except GRPCError as exc:
            error = exc
        except MetadataGeneratorError as exc:
            error = GRPCError(
                Status.UNAVAILABLE,
                "Getting metadata from plugin failed with error: {}".format(exc),
            )
            error.__cause__ = exc
        except asyncio.TimeoutError as exc:
            error = GRPCError(Status.DEADLINE_EXCEEDED, "Deadline exceeded")
            error.__cause__ = exc
        except (OSError, StreamTerminatedError, ProtocolError) as exc:
            error = GRPCError(Status.UNAVAILABLE, str(exc) or repr(exc))
            error.__cause__ = exc
        except Exception as exc:
            log.exception("Unexpected failure in %s", self._method.path)
            error = GRPCError(Status.INTERNAL, repr(exc))
            error.__cause__ = exc

        if error is None and reply is None:
            error = GRPCError(Status.INTERNAL, "No message received")

        if error is None:
            self._response = (
                self._method.convert_reply(reply) if self._convert_reply else reply
            )
            status = CallStatus(Status.OK, None, self._trailing(stream))
        else:
            self._error = error
            status = CallStatus(error.status, error.message, self._trailing(stream))
        log.debug("Finished %s with %s", self._method.path, status.code.name)

        self._emit(CallCompleted(self._error, self._response))
        self._emit(StatusReceived(status))

    @staticmethod
    def _trailing(stream: t.Optional[grpclib.client.Stream[t.Any, t.Any]]) -> Metadata:
        if stream is None:
            return Metadata()
        return Metadata.from_multidict(stream.trailing_metadata)
