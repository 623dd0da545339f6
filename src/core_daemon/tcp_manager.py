"""
Manages device TCP connections for the upro2api daemon.

This module is responsible for:
- Running the asyncio TCP server that trackers connect to.
- Cutting the byte stream of each connection into '#'-terminated text frames.
- Handing every frame to frame_processing together with a reply channel bound to
  the same connection.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from core_daemon.frame_processing import process_frame
from core_daemon.metrics import TCP_CONNECTIONS
from upro_decoder import UproFrameDecoder

logger = logging.getLogger(__name__)

FRAME_TERMINATOR = b"#"
READ_CHUNK_SIZE = 4096
# One character per byte, so any type or subtype byte is echoed back unchanged in the reply.
WIRE_ENCODING = "latin-1"


def split_frames(buffer: bytes) -> Tuple[List[str], bytes]:
    """
    Cut complete frames out of a connection buffer.

    Frames are returned without their '#' terminator, decoded as latin-1 and
    stripped of surrounding CR/LF. Empty frames are dropped.

    Returns:
        tuple(frames: list[str], remainder: bytes)
    """
    frames = []
    while True:
        end = buffer.find(FRAME_TERMINATOR)
        if end == -1:
            break
        raw = buffer[:end]
        buffer = buffer[end + 1 :]
        text = raw.decode(WIRE_ENCODING).strip("\r\n")
        if text:
            frames.append(text)
    return frames, buffer


class StreamWriterChannel:
    """ReplyChannel writing latin-1 text to an asyncio StreamWriter."""

    def __init__(self, writer: asyncio.StreamWriter):
        self.writer = writer
        self.pending = False

    def write(self, message: str) -> None:
        self.writer.write(message.encode(WIRE_ENCODING, errors="replace"))
        self.pending = True

    async def drain(self) -> None:
        if self.pending:
            self.pending = False
            await self.writer.drain()


async def handle_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    decoder: Optional[UproFrameDecoder] = None,
    max_frame_length: int = 1024,
) -> None:
    """
    Reads frames from one device connection until it closes.

    The connection is dropped when more than max_frame_length bytes arrive without
    a frame terminator.
    """
    peer = writer.get_extra_info("peername")
    channel = StreamWriterChannel(writer)
    buffer = b""
    TCP_CONNECTIONS.inc()
    logger.info(f"Device connected from {peer}")
    try:
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            buffer += chunk
            frames, buffer = split_frames(buffer)
            for frame in frames:
                process_frame(frame, decoder, channel, peer)
            await channel.drain()
            if len(buffer) > max_frame_length:
                logger.warning(
                    f"Closing connection from {peer}: {len(buffer)} bytes without "
                    f"a frame terminator (limit {max_frame_length})"
                )
                break
    except ConnectionResetError:
        logger.info(f"Connection reset by peer {peer}")
    except Exception as e:
        logger.error(f"Error on connection {peer}: {e}", exc_info=True)
    finally:
        TCP_CONNECTIONS.dec()
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection {peer}: {e}")
        logger.info(f"Connection closed {peer}")


async def start_tcp_listener(
    host: str,
    port: int,
    decoder: Optional[UproFrameDecoder] = None,
    max_frame_length: int = 1024,
) -> asyncio.AbstractServer:
    """
    Starts the TCP server devices report to.

    Args:
        host: Address to bind.
        port: Port to bind; 0 picks a free port.
        decoder: Decoder for all connections; defaults to app_state.frame_decoder.
        max_frame_length: Passed to handle_connection.

    Returns:
        The running asyncio server.
    """

    async def _client_connected(reader, writer):
        await handle_connection(reader, writer, decoder, max_frame_length)

    server = await asyncio.start_server(_client_connected, host, port)
    addresses = ", ".join(str(s.getsockname()) for s in server.sockets)
    logger.info(f"Upro TCP listener started on {addresses}")
    return server
