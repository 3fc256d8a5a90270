"""
control.py - OSC control-message client

Sends fire-and-forget OSC messages over UDP to the processes under test.
There is no acknowledgement in the protocol, so every send is followed by a
fixed settle interval that gives the receiver time to apply the change
before the next message goes out. Delivery problems are logged and otherwise
ignored: whether a message arrived is only ever judged by the outcome of the
scenario that sent it.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from pythonosc import udp_client

logger = logging.getLogger(__name__)


# OSC address patterns understood by the reference engine and the test binary
ACTIVATION_ADDRESS = "/Hydrogen/JACK_TIMEBASE_MASTER_ACTIVATION"
TRANSPORT_TESTS_ADDRESS = "/h2JackTimebase/TransportTests"
START_TEST_DRIVER_ADDRESS = "/Hydrogen/StartTestJackDriver"
QUIT_ADDRESS = "/Hydrogen/QUIT"


@dataclass(frozen=True)
class ControlMessage:
    """An OSC message: address pattern plus positional arguments."""
    address: str
    args: Tuple = ()

    def __str__(self):
        if not self.args:
            return self.address
        return f"{self.address} {' '.join(str(a) for a in self.args)}"


def activation(master: bool) -> ControlMessage:
    """Toggle Timebase master registration (sent as 1.0 / 0.0)."""
    return ControlMessage(ACTIVATION_ADDRESS, (1.0 if master else 0.0,))


def transport_tests() -> ControlMessage:
    """Make the test binary run its checks and exit."""
    return ControlMessage(TRANSPORT_TESTS_ADDRESS)


def start_test_driver() -> ControlMessage:
    """Start the patched audio driver of a secondary test binary."""
    return ControlMessage(START_TEST_DRIVER_ADDRESS)


def quit_message() -> ControlMessage:
    return ControlMessage(QUIT_ADDRESS)


class ControlMessageClient:
    """
    Client bound to one fixed endpoint.

    Usage:
        client = ControlMessageClient("primary", "localhost", 8099, settle_s=0.5)
        client.send(activation(True))
        client.send(transport_tests())

    Thread safety: send() serializes on an internal lock so two threads never
    interleave their settle intervals on the same endpoint.
    """

    def __init__(self, name: str, host: str, port: int, settle_s: float = 0.5):
        """
        Initialize client.

        Args:
            name: Endpoint name used in log lines
            host: Destination host
            port: Destination UDP port
            settle_s: Seconds to wait after each send
        """
        self.name = name
        self.host = host
        self.port = port
        self.settle_s = settle_s
        self.sent_count = 0
        self.failed_count = 0
        self._client: Optional[udp_client.SimpleUDPClient] = None
        self._lock = threading.Lock()

    def _udp(self) -> udp_client.SimpleUDPClient:
        if self._client is None:
            self._client = udp_client.SimpleUDPClient(self.host, self.port)
        return self._client

    def send(self, message: ControlMessage) -> bool:
        """
        Send one message and wait the settle interval.

        Returns:
            True if the message was handed to the transport, False if the
            send raised (the failure is logged, never re-raised)
        """
        with self._lock:
            logger.info("Sending [%s] to %s [:%d]", message, self.name, self.port)
            try:
                self._udp().send_message(message.address, list(message.args))
                self.sent_count += 1
                delivered = True
            except OSError as e:
                self.failed_count += 1
                logger.error("Failed to send [%s] to %s [:%d]: %s",
                             message, self.name, self.port, e)
                delivered = False

            self._settle()
            return delivered

    def _settle(self):
        if self.settle_s > 0:
            time.sleep(self.settle_s)
