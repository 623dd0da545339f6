"""
Handles the processing of incoming Upro frames for the upro2api daemon.

This module is responsible for:
- Decoding one text frame with the shared UproFrameDecoder.
- Writing acknowledgment replies through the connection's reply channel.
- Updating the application state (`app_state`) with accepted positions.
- Recording metrics for each outcome (malformed, unknown device, rejected, decoded).
"""

import logging
import time
from typing import Any, Optional

from common.models import Position
from core_daemon import app_state
from core_daemon.metrics import (
    DECODE_ERRORS,
    FRAME_COUNTER,
    FRAME_LATENCY,
    MALFORMED_FRAMES,
    REJECTED_POSITIONS,
    REPLIES_SENT,
    REPLY_ERRORS,
    SUCCESSFUL_DECODES,
    UNKNOWN_DEVICES,
)
from upro_decoder import (
    AcceptanceGateFailed,
    MalformedFrame,
    ReplyChannel,
    UnknownDevice,
    UproFrameDecoder,
)

logger = logging.getLogger(__name__)


class CountingChannel:
    """
    Wraps a ReplyChannel and counts the replies written through it.

    A reply that cannot be written is logged and counted in REPLY_ERRORS; it does
    not abort decoding of the frame it acknowledges.
    """

    def __init__(self, channel: ReplyChannel):
        self.channel = channel
        self.replies: list[str] = []

    def write(self, message: str) -> None:
        try:
            self.channel.write(message)
        except (OSError, ValueError) as e:
            REPLY_ERRORS.inc()
            logger.warning(f"Could not send reply {message!r}: {e}")
            return
        self.replies.append(message)
        REPLIES_SENT.inc()


def process_frame(
    message: str,
    decoder: Optional[UproFrameDecoder] = None,
    channel: Optional[ReplyChannel] = None,
    remote_address: Optional[Any] = None,
    store: bool = True,
) -> Optional[Position]:
    """
    Decodes one frame and stores the resulting position.

    Args:
        message: One text frame from a device.
        decoder: Decoder to use; defaults to app_state.frame_decoder.
        channel: Reply channel of the connection the frame arrived on.
        remote_address: Peer address of the connection.
        store: Whether an accepted position is written to app_state.

    Returns:
        The decoded Position, or None when the frame produced no position.
    """
    decoder = decoder or app_state.frame_decoder
    counting_channel = CountingChannel(channel) if channel is not None else None

    FRAME_COUNTER.inc()
    start_time = time.perf_counter()
    try:
        position = decoder.decode_frame(message, counting_channel, remote_address)
    except MalformedFrame as e:
        MALFORMED_FRAMES.inc()
        logger.warning(f"Dropping frame from {remote_address}: {e}")
        return None
    except UnknownDevice as e:
        UNKNOWN_DEVICES.inc()
        logger.warning(f"Dropping frame from {remote_address}: {e}")
        return None
    except AcceptanceGateFailed as e:
        REJECTED_POSITIONS.inc()
        logger.debug(str(e))
        return None
    except Exception as e:
        DECODE_ERRORS.inc()
        logger.error(
            f"Decode error for frame {message!r} from {remote_address}: {e}", exc_info=True
        )
        return None
    finally:
        FRAME_LATENCY.observe(time.perf_counter() - start_time)

    SUCCESSFUL_DECODES.inc()
    logger.debug(
        f"Device {position.device_id}: lat={position.latitude:.6f} lon={position.longitude:.6f} "
        f"valid={position.valid} time={position.time}"
    )
    if store:
        app_state.update_position(position)
    return position
