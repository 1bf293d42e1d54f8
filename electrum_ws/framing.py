"""
Frame assembly for inbound WebSocket payloads.

Electrum servers terminate every JSON document with a newline, but a single
WebSocket message may carry several documents, and a document may be split
across messages. Payloads are split on newline, carriage return and space;
every candidate that does not parse into a recognized JSON-RPC message is
kept as a fragment and joined with the next candidate.
"""

import codecs
import json
import logging
import re
from typing import List, Optional, Union

from .types import RpcMessage, parse_rpc_message


logger = logging.getLogger("electrum_ws.framing")

# Candidates are the runs between separators (newline, carriage return, space)
_CANDIDATE = re.compile(r"[^\r\n ]+")


class FrameAssembler:
    """
    Turns raw payloads into parsed JSON-RPC messages.

    Only the most recent unresolved fragment is ever retried: a candidate
    that fails to parse is joined once with the buffered fragment, and
    whatever was tried last becomes the new buffer. Fragments are joined
    with the separators that originally stood between them, so strings
    containing spaces survive reassembly.
    """

    def __init__(self):
        self._incomplete = ""
        # Separators seen since the buffered fragment ended
        self._gap = ""
        # Holds the leading bytes of a character split across payloads
        self._decoder = codecs.getincrementaldecoder("utf-8")()

    @property
    def incomplete(self) -> str:
        """Fragment waiting for the next candidate."""
        return self._incomplete

    def reset(self) -> None:
        self._incomplete = ""
        self._gap = ""
        self._decoder.reset()

    def feed(self, data: Union[str, bytes]) -> List[RpcMessage]:
        """
        Split a payload into candidates and parse each one.

        Args:
            data: Raw payload (string or UTF-8 bytes)

        Returns:
            Recognized messages in delivery order
        """
        if isinstance(data, (bytes, bytearray, memoryview)):
            try:
                text = self._decoder.decode(bytes(data))
            except UnicodeDecodeError as e:
                self._decoder.reset()
                logger.warning(f"Dropping payload that is not valid UTF-8: {e}")
                return []
        else:
            text = data

        messages = []
        gap = self._gap
        pos = 0
        for match in _CANDIDATE.finditer(text):
            gap += text[pos:match.start()]
            pos = match.end()
            msg = self.parse_line(match.group(), gap)
            gap = ""
            if msg is not None:
                messages.append(msg)

        self._gap = gap + text[pos:] if self._incomplete else ""
        return messages

    def parse_line(self, line: str, gap: str = "") -> Optional[RpcMessage]:
        """
        Parse one candidate, retrying once together with the buffered fragment.

        Args:
            line: Candidate without separators
            gap: Separators between the buffered fragment and the candidate

        Returns:
            The recognized message, None if the candidate was buffered
        """
        candidate = line
        retried = False

        while True:
            msg = _try_parse(candidate)
            if msg is not None:
                self._incomplete = ""
                return msg

            if retried or not self._incomplete or self._incomplete in line:
                break

            candidate = self._incomplete + gap + line
            retried = True

        logger.debug(f"Failed to parse JSON, retrying together with next message: {candidate!r}")
        self._incomplete = candidate
        return None


def _try_parse(candidate: str) -> Optional[RpcMessage]:
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return parse_rpc_message(data)
