"""Public facade of the Codicent client.

Every operation is routed through a ``CallGate``: calls made while the
pub/sub transport is still loading are queued and replayed in order once it
is ready, or rejected if it fails to load.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from types import TracebackType
from typing import IO, Any

import httpx

from src.client.config import ClientConfig
from src.client.constants import (
    ADD_CHAT_MESSAGE_PATH,
    AI_CHAT_REPLY_STATUS_PATH,
    AI_MENTION_ALIASES,
    DEFAULT_MAX_POLLING_SECONDS,
    DEFAULT_MESSAGE_TYPE,
    DEFAULT_PAGE_LENGTH,
    DEFAULT_PAGE_START,
    DEFAULT_POLLING_INTERVAL_SECONDS,
    FIND_DATA_MESSAGES_PATH,
    GET_CHAT_MESSAGES_PATH,
    GET_FILE_INFO_PATH,
    START_AI_CHAT_PATH,
    UPLOAD_FILE_PATH,
)
from src.client.data import DataMessages
from src.client.models import FileInfo, Message
from src.connection.channel import MessageChannel
from src.connection.manager import ConnectionLifecycleManager
from src.connection.models import ReconnectPolicy
from src.connection.signalr import load_signalr_transport
from src.connection.state_machine import ConnectionPhase
from src.connection.transport import PubSubTransport, TransportLoader
from src.errors import ClientError, HttpStatusError, InvalidArgumentError
from src.gate.gate import CallGate, GateState
from src.observability.sink import ConsumerLog
from src.retry.backoff import RandomSource
from src.retry.cancellation import CancelSignal, sleep_unless_cancelled
from src.retry.constants import (
    AI_REPLY_MAX_RETRIES,
    AI_REPLY_TIMEOUT_SECONDS,
    HTTP_STATUS_ACCEPTED,
    UPLOAD_TIMEOUT_SECONDS,
)
from src.retry.executor import RetryingExecutor
from src.retry.models import RetryPolicy


def _to_iso(value: datetime) -> str:
    """Format a timestamp as UTC ISO-8601 with a ``Z`` suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def strip_reply_mentions(content: str, codicent: str) -> str:
    """Remove the project and assistant mentions from an AI reply."""
    stripped = content.replace(f"@{codicent}", "", 1)
    for alias in AI_MENTION_ALIASES:
        stripped = stripped.replace(alias, "", 1)
    return stripped.strip()


class CodicentClient:
    """Resilient client for the Codicent messaging service.

    Operations return ``asyncio`` futures synchronously and may be called
    before the pub/sub transport has loaded. ``begin_transport_load`` (or
    entering the client as an async context manager) starts loading it.

    Example:
        async with CodicentClient() as client:
            await client.init(token="...")
            message_id = await client.post_message("@project hello")
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport_loader: TransportLoader = load_signalr_transport,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        reconnect_policy: ReconnectPolicy | None = None,
        rand: RandomSource | None = None,
    ) -> None:
        """Initialize the client. Nothing is loaded or connected yet.

        Args:
            config: Initial configuration; ``init`` merges options over it.
            transport_loader: Loads the pub/sub transport.
            http_client: HTTP client to use. One is created (and owned) if omitted.
            retry_policy: Default retry policy for HTTP operations.
            reconnect_policy: Reconnect policy template for the connection.
            rand: Random source for every backoff jitter.
        """
        self._config = config or ClientConfig()
        self._transport_loader = transport_loader
        self._owns_http_client = http_client is None
        # Attempt timeouts come from the retry policy, not from httpx
        self._http = http_client or httpx.AsyncClient(timeout=None)
        self._retry_policy = retry_policy or RetryPolicy()
        self._reconnect_policy = reconnect_policy or ReconnectPolicy()
        self._rand = rand

        self._channel = MessageChannel()
        self._transport: PubSubTransport | None = None
        self._manager: ConnectionLifecycleManager | None = None
        self._manager_key: tuple[str | None, str | None, int] | None = None
        self._load_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._unsubscribe_handler: Callable[[], None] | None = None

        self._log = ConsumerLog(self._config.log, component="client")
        self._executor = self._build_executor()
        self._gate = CallGate(
            operations={
                "init": self._init,
                "post_message": self._post_message,
                "get_messages": self._get_messages,
                "upload": self._upload,
                "get_file_info": self._get_file_info,
                "get_data_messages": self._get_data_messages,
                "get_chat_reply": self._get_chat_reply,
            },
            degraded_operations={"init": self._init_degraded},
        )
        self.data = DataMessages(self)

    async def __aenter__(self) -> "CodicentClient":
        self.begin_transport_load()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def config(self) -> ClientConfig:
        """Current configuration."""
        return self._config

    @property
    def gate_state(self) -> GateState:
        """Loading state of the pub/sub transport."""
        return self._gate.state

    @property
    def connection(self) -> ConnectionLifecycleManager | None:
        """Connection manager, once ``init`` has built one."""
        return self._manager

    @property
    def messages(self) -> MessageChannel:
        """Channel of inbound pub/sub events."""
        return self._channel

    def begin_transport_load(self) -> asyncio.Task[None]:
        """Start loading the pub/sub transport. Later calls return the same task."""
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load_transport())
        return self._load_task

    async def wait_for_transport(self) -> GateState:
        """Load the transport if needed and wait for the outcome."""
        await self.begin_transport_load()
        return self._gate.state

    async def aclose(self) -> None:
        """Stop the connection, end message streams and release the HTTP client."""
        for task in (self._load_task, self._connect_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        if self._manager is not None:
            await self._manager.stop()
        self._channel.close()
        if self._owns_http_client:
            await self._http.aclose()

    # Gated operations

    def init(self, **options: Any) -> "asyncio.Future[None]":
        """Apply configuration and open the pub/sub connection.

        Args:
            **options: ``token``, ``pubsubHost``/``signalRHost``, ``baseUrl``,
                ``maxConnectionAttempts``, ``log``, ``handleMessage`` (snake_case
                spellings are accepted too).

        Returns:
            A future resolving once the configuration is applied. Connecting
            continues in the background.
        """
        return self._gate.dispatch("init", **options)

    def post_message(
        self,
        message: str,
        parent_id: str | None = None,
        message_type: str | None = None,
    ) -> "asyncio.Future[str]":
        """Post a chat message.

        Args:
            message: Message content. Must not be blank.
            parent_id: ID of the message this one replies to.
            message_type: Message type, ``info`` by default.

        Returns:
            A future resolving to the new message ID.
        """
        return self._gate.dispatch(
            "post_message", message, parent_id=parent_id, message_type=message_type
        )

    def get_messages(
        self,
        start: int = DEFAULT_PAGE_START,
        length: int = DEFAULT_PAGE_LENGTH,
        search: str = "",
        after_timestamp: datetime | None = None,
        before_timestamp: datetime | None = None,
        skip_content: bool = False,
    ) -> "asyncio.Future[list[Message]]":
        """List chat messages, newest first.

        Returns:
            A future resolving to the matching messages.
        """
        return self._gate.dispatch(
            "get_messages",
            start=start,
            length=length,
            search=search,
            after_timestamp=after_timestamp,
            before_timestamp=before_timestamp,
            skip_content=skip_content,
        )

    def upload(self, data: bytes | IO[bytes], filename: str) -> "asyncio.Future[str]":
        """Upload a file.

        Returns:
            A future resolving to the stored file ID.
        """
        return self._gate.dispatch("upload", data, filename)

    def get_file_info(self, file_id: str) -> "asyncio.Future[FileInfo]":
        """Fetch metadata of an uploaded file."""
        return self._gate.dispatch("get_file_info", file_id)

    def get_data_messages(
        self, codicent: str, tags: list[str], search: str | None = None
    ) -> "asyncio.Future[list[dict[str, Any]]]":
        """Find data messages of a project carrying the given tags."""
        return self._gate.dispatch(
            "get_data_messages", codicent, tags, search=search
        )

    def get_chat_reply(
        self,
        message: str,
        codicent: str,
        message_id: str | None = None,
        max_polling_time: float = DEFAULT_MAX_POLLING_SECONDS,
        polling_interval: float = DEFAULT_POLLING_INTERVAL_SECONDS,
        cancel: CancelSignal | None = None,
    ) -> "asyncio.Future[str | None]":
        """Ask the project assistant a question and wait for its answer.

        Args:
            message: Prompt text.
            codicent: Project name.
            message_id: Existing message the prompt refers to.
            max_polling_time: Seconds to wait for the answer.
            polling_interval: Seconds between status polls.
            cancel: Caller cancel signal for the whole exchange.

        Returns:
            A future resolving to the answer, or None if polling timed out.
        """
        return self._gate.dispatch(
            "get_chat_reply",
            message,
            codicent,
            message_id=message_id,
            max_polling_time=max_polling_time,
            polling_interval=polling_interval,
            cancel=cancel,
        )

    # Transport loading and connection

    async def _load_transport(self) -> None:
        try:
            transport = await self._transport_loader()
        except Exception as e:  # noqa: BLE001
            self._log.warning(
                "transport_load_failed",
                "SignalR failed to load. Some Codicent features may not be available.",
                error=str(e),
            )
            self._gate.mark_failed(e)
            return
        self._transport = transport
        self._log.debug("transport_ready", "Pub/sub transport loaded")
        self._gate.mark_ready()

    def _apply_config(self, config: ClientConfig) -> None:
        self._config = config
        self._log = ConsumerLog(config.log, component="client")
        self._executor = self._build_executor()
        if self._manager is not None:
            self._manager.use_sink(config.log)

        if self._unsubscribe_handler is not None:
            self._unsubscribe_handler()
            self._unsubscribe_handler = None
        if config.handle_message is not None:
            self._unsubscribe_handler = self._channel.subscribe(config.handle_message)

    def _build_executor(self) -> RetryingExecutor:
        return RetryingExecutor(
            self._http, policy=self._retry_policy, log=self._log, rand=self._rand
        )

    def _schedule_connect(self) -> None:
        """Schedule one connect for every ``init`` applied before it runs."""
        if self._connect_task is not None and not self._connect_task.done():
            self._log.debug("connect_coalesced", "Connection already scheduled")
            return
        self._connect_task = asyncio.ensure_future(self._connect())
        self._connect_task.add_done_callback(self._on_connect_done)

    def _on_connect_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        self._log.error(
            "connect_failed",
            f"Failed to set up Codicent connection: {error}",
            error=str(error),
        )

    async def _connect(self) -> None:
        # Config is re-read after every suspension so the latest init wins
        while self._manager is not None:
            reusable = self._manager.phase != ConnectionPhase.EXHAUSTED
            if reusable and self._manager_key == self._config.connection_key():
                return
            await self._manager.stop()
            self._manager = None
            self._manager_key = None

        if self._transport is None:
            msg = "Pub/sub transport is not loaded"
            raise RuntimeError(msg)

        config = self._config
        token = config.require_token()
        self._manager = ConnectionLifecycleManager(
            self._transport,
            config.pubsub_host or "",
            token_provider=lambda: token,
            policy=self._reconnect_policy.model_copy(
                update={"max_connection_attempts": config.max_connection_attempts}
            ),
            channel=self._channel,
            log=self._log,
            rand=self._rand,
        )
        self._manager_key = config.connection_key()
        self._manager.start()

    async def _init(self, **options: Any) -> None:
        config = self._config.merge(options)
        config.require_connection_settings()
        self._apply_config(config)
        self._schedule_connect()

    async def _init_degraded(self, **options: Any) -> None:
        config = self._config.merge(options)
        config.require_connection_settings()
        self._apply_config(config)
        self._log.warning(
            "init_degraded",
            "Codicent initialized in fallback mode. "
            "Real-time features are not available.",
        )

    # HTTP operations

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.require_token()}"}

    async def _send(
        self,
        operation: str,
        request: httpx.Request,
        policy: RetryPolicy | None = None,
        cancel: CancelSignal | None = None,
    ) -> httpx.Response:
        """Execute a request and fail on a non-success final status.

        Raises:
            HttpStatusError: The final response is not successful.
            ClientError: The request failed or was cancelled.
        """
        try:
            response = await self._executor.execute(request, policy, cancel)
        except (ClientError, httpx.HTTPError) as e:
            self._log.error(
                f"{operation}_failed",
                f"Error in {operation}: {e}",
                operation=operation,
            )
            raise

        if not response.is_success:
            error = HttpStatusError(response.status_code, operation)
            self._log.error(
                f"{operation}_failed",
                f"Error in {operation}: {error.message}",
                operation=operation,
                status_code=response.status_code,
            )
            raise error
        return response

    async def _post_message(
        self,
        message: str,
        parent_id: str | None = None,
        message_type: str | None = None,
    ) -> str:
        if not message or not message.strip():
            msg = "Parameter message is required to post a message"
            raise InvalidArgumentError(msg, field="message")

        body: dict[str, Any] = {
            "content": message,
            "type": message_type or DEFAULT_MESSAGE_TYPE,
            "createdAt": _to_iso(datetime.now(UTC)),
            "isNew": False,
        }
        if parent_id:
            body["parentId"] = parent_id

        request = self._http.build_request(
            "POST",
            self._url(ADD_CHAT_MESSAGE_PATH),
            json=body,
            headers=self._auth_headers(),
        )
        response = await self._send("post_message", request)
        return response.json()["id"]

    async def _get_messages(
        self,
        start: int = DEFAULT_PAGE_START,
        length: int = DEFAULT_PAGE_LENGTH,
        search: str = "",
        after_timestamp: datetime | None = None,
        before_timestamp: datetime | None = None,
        skip_content: bool = False,
    ) -> list[Message]:
        params: dict[str, str | int] = {
            "start": start,
            "length": length,
            "search": search,
        }
        if after_timestamp is not None:
            params["afterTimestamp"] = _to_iso(after_timestamp)
        if before_timestamp is not None:
            params["beforeTimestamp"] = _to_iso(before_timestamp)
        if not skip_content:
            params["includeContent"] = "true"

        request = self._http.build_request(
            "GET",
            self._url(GET_CHAT_MESSAGES_PATH),
            params=params,
            headers=self._auth_headers(),
        )
        response = await self._send("get_messages", request)
        return [Message.model_validate(item) for item in response.json()]

    async def _upload(self, data: bytes | IO[bytes], filename: str) -> str:
        if not filename or not filename.strip():
            msg = "Parameter filename is required to upload a file"
            raise InvalidArgumentError(msg, field="filename")

        request = self._http.build_request(
            "POST",
            self._url(UPLOAD_FILE_PATH),
            params={"filename": filename},
            files={"file": (filename, data)},
            headers=self._auth_headers(),
        )
        response = await self._send(
            "upload",
            request,
            policy=self._retry_policy.with_overrides(
                timeout_seconds=UPLOAD_TIMEOUT_SECONDS
            ),
        )
        file_id = str(response.json())
        self._log.info(
            "file_uploaded", f"File uploaded successfully. ID: {file_id}", file_id=file_id
        )
        return file_id

    async def _get_file_info(self, file_id: str) -> FileInfo:
        request = self._http.build_request(
            "GET",
            self._url(GET_FILE_INFO_PATH),
            params={"fileId": file_id},
            headers=self._auth_headers(),
        )
        response = await self._send("get_file_info", request)
        self._log.info(
            "file_info_retrieved",
            f"File info retrieved successfully. ID: {file_id}",
            file_id=file_id,
        )
        return FileInfo.model_validate(response.json())

    async def _get_data_messages(
        self, codicent: str, tags: list[str], search: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"project": codicent}
        if search:
            params["search"] = search

        request = self._http.build_request(
            "POST",
            self._url(FIND_DATA_MESSAGES_PATH),
            params=params,
            json={"tags": tags},
            headers=self._auth_headers(),
        )
        response = await self._send("get_data_messages", request)
        return response.json()

    async def _get_chat_reply(
        self,
        message: str,
        codicent: str,
        message_id: str | None = None,
        max_polling_time: float = DEFAULT_MAX_POLLING_SECONDS,
        polling_interval: float = DEFAULT_POLLING_INTERVAL_SECONDS,
        cancel: CancelSignal | None = None,
    ) -> str | None:
        if not message or not message.strip():
            msg = "Parameter message is required to ask for a reply"
            raise InvalidArgumentError(msg, field="message")

        policy = self._retry_policy.with_overrides(
            max_retries=AI_REPLY_MAX_RETRIES, timeout_seconds=AI_REPLY_TIMEOUT_SECONDS
        )
        payload = {"project": codicent, "message": message}
        if message_id:
            payload["messageId"] = message_id

        start_request = self._http.build_request(
            "POST",
            self._url(START_AI_CHAT_PATH),
            json=payload,
            headers=self._auth_headers(),
        )
        response = await self._send("get_chat_reply", start_request, policy, cancel)
        prompt_message_id = response.json().get("promptMessageId")
        if not prompt_message_id:
            self._log.warning(
                "chat_reply_missing_prompt",
                "No promptMessageId returned from server",
            )
            return None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_polling_time
        while loop.time() < deadline:
            status_request = self._http.build_request(
                "GET",
                self._url(AI_CHAT_REPLY_STATUS_PATH),
                params={"promptMessageId": prompt_message_id},
                headers=self._auth_headers(),
            )
            status = await self._send("get_chat_reply", status_request, cancel=cancel)
            if status.status_code == HTTP_STATUS_ACCEPTED:
                await sleep_unless_cancelled(polling_interval, cancel)
                continue
            return strip_reply_mentions(status.json().get("content", ""), codicent)

        self._log.warning(
            "chat_reply_timeout",
            "Polling timeout reached for AI chat",
            prompt_message_id=prompt_message_id,
        )
        return None
