"""gRPC client for the external video transcoding worker.

The worker exposes one client-streaming method:

    package proto;
    service VideoTranscoderService {
      rpc TranscodeVideo (stream TranscodeRequest) returns (TranscodeResponse);
    }
    message TranscodeRequest  { string filename = 1; }
    message TranscodeResponse {
      bool success = 1;
      repeated string transcoded_files = 2;
      double duration = 3;
      string error = 4;
    }

The message classes are built from a descriptor at import time, so no
generated `_pb2` module is needed.

Usage:
    client = TranscodeClient()
    result = await client.transcode("video-storage/1b9d...")
    if not result.success:
        ...
    await client.close()
"""

from __future__ import annotations

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from loguru import logger

from app.app_config import get_app_environ_config

from .transcoder_schemas import TranscodeResult

TRANSCODE_METHOD = "/proto.VideoTranscoderService/TranscodeVideo"

# Formats returned by the DEMO_MODE stub, lowest to highest
DEMO_FORMATS = ["240p", "480p", "720p", "1080p"]

_MAX_MESSAGE_LENGTH = 100 * 1024 * 1024

_CHANNEL_OPTIONS = [
    ("grpc.keepalive_time_ms", 10000),
    ("grpc.keepalive_timeout_ms", 5000),
    ("grpc.keepalive_permit_without_calls", 1),
    ("grpc.enable_http_proxy", 0),
    ("grpc.max_receive_message_length", _MAX_MESSAGE_LENGTH),
    ("grpc.max_send_message_length", _MAX_MESSAGE_LENGTH),
]


def _build_message_classes():
    field = descriptor_pb2.FieldDescriptorProto
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="video_transcoder.proto",
        package="proto",
        syntax="proto3",
    )

    request = file_proto.message_type.add(name="TranscodeRequest")
    request.field.add(name="filename", number=1, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL)

    response = file_proto.message_type.add(name="TranscodeResponse")
    response.field.add(name="success", number=1, type=field.TYPE_BOOL, label=field.LABEL_OPTIONAL)
    response.field.add(
        name="transcoded_files", number=2, type=field.TYPE_STRING, label=field.LABEL_REPEATED
    )
    response.field.add(name="duration", number=3, type=field.TYPE_DOUBLE, label=field.LABEL_OPTIONAL)
    response.field.add(name="error", number=4, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL)

    pool = descriptor_pool.DescriptorPool()
    pool.Add(file_proto)
    return (
        message_factory.GetMessageClass(pool.FindMessageTypeByName("proto.TranscodeRequest")),
        message_factory.GetMessageClass(pool.FindMessageTypeByName("proto.TranscodeResponse")),
    )


TranscodeRequest, TranscodeResponse = _build_message_classes()


def to_transcode_result(response) -> TranscodeResult:
    """Convert a TranscodeResponse message into a TranscodeResult."""
    return TranscodeResult(
        success=response.success,
        transcoded_files=list(response.transcoded_files),
        duration=response.duration or None,
        error=response.error or None,
    )


class TranscodeClient:
    """Async client for the transcoding worker.

    `transcode` never raises for worker-side problems: an RPC error and a
    `success=false` response both come back as a failed TranscodeResult.
    """

    def __init__(
        self,
        address: str | None = None,
        timeout: float | None = None,
        demo_mode: bool | None = None,
    ):
        app_config = get_app_environ_config()
        self.address = address or app_config.TRANSCODER_ADDRESS
        self.timeout = timeout or app_config.TRANSCODER_TIMEOUT_SECONDS
        self._use_tls = app_config.TRANSCODER_USE_TLS
        self._demo_mode = app_config.DEMO_MODE if demo_mode is None else demo_mode
        self._channel: grpc.aio.Channel | None = None

    def _get_channel(self) -> grpc.aio.Channel:
        if self._channel is None:
            if self._use_tls:
                self._channel = grpc.aio.secure_channel(
                    self.address, grpc.ssl_channel_credentials(), options=_CHANNEL_OPTIONS
                )
            else:
                logger.warning(f"Using insecure gRPC channel to transcoder at {self.address}")
                self._channel = grpc.aio.insecure_channel(self.address, options=_CHANNEL_OPTIONS)
        return self._channel

    async def transcode(self, storage_key: str) -> TranscodeResult:
        """Ask the worker to transcode the uploaded object `storage_key`.

        Waits for the worker's single response, bounded by `timeout`.
        """
        if self._demo_mode:
            logger.info(f"TranscodeClient DEMO_MODE=true: stubbed transcode of {storage_key}")
            return TranscodeResult(success=True, transcoded_files=list(DEMO_FORMATS), duration=0.0)

        call = self._get_channel().stream_unary(
            TRANSCODE_METHOD,
            request_serializer=TranscodeRequest.SerializeToString,
            response_deserializer=TranscodeResponse.FromString,
        )

        try:
            response = await call(iter([TranscodeRequest(filename=storage_key)]), timeout=self.timeout)
        except grpc.RpcError as e:
            details = e.details() if isinstance(e, grpc.aio.AioRpcError) else str(e)
            code = e.code() if isinstance(e, grpc.aio.AioRpcError) else None
            logger.error(f"Transcode RPC failed for {storage_key}: {code} {details}")
            return TranscodeResult.failed(details or "Transcoding worker unavailable")

        result = to_transcode_result(response)
        if result.success:
            logger.info(
                f"Transcode finished for {storage_key}: {result.transcoded_files} ({result.duration}s)"
            )
        else:
            logger.warning(f"Transcode reported failure for {storage_key}: {result.error}")
        return result

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            logger.info("Transcoder channel closed")
