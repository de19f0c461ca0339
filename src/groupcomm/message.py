"""Variable-length tagged point-to-point messages.

A ``VarMessage`` carries an opaque byte payload between two ranks. The tag
is bound at the class level, so every subclass (or ``with_tag`` channel)
is an independent logical channel that never matches messages of another.

Typical exchange::

    send = {dest: MyMessage(...) for dest in peers}
    recv = {src: MyMessage() for src in senders}
    MyMessage.isend_all(send, comm)
    MyMessage.recv_all(recv, comm)
    MyMessage.wait_all_sent(send)
"""

from __future__ import annotations

import copy
import logging

from mpi4py import MPI

from .errors import MessageSizeError, PendingSendError, UnexpectedMessageError

log = logging.getLogger(__name__)


class VarMessage:
    """Variable-length message containing unspecific binary data.

    Subclasses override ``encode``/``decode`` to (de)serialize their payload
    into ``data`` right before sending and right after receiving.
    """

    tag = 0

    _channels = {}

    def __init__(self, data: bytes = b""):
        self.data = bytes(data)
        self.send_request = MPI.REQUEST_NULL

    @classmethod
    def with_tag(cls, tag: int) -> type:
        """Return the subclass of ``cls`` bound to channel ``tag``.

        The same class object is returned for repeated calls, so messages
        created through it share one channel.
        """
        key = (cls, int(tag))
        channel = VarMessage._channels.get(key)
        if channel is None:
            channel = type(f"{cls.__name__}_tag{tag}", (cls,), {"tag": int(tag)})
            VarMessage._channels[key] = channel
        return channel

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def isend(self, rank: int, comm: MPI.Comm):
        """Non-blocking send to ``rank``; the request stays installed until cleared."""
        self._verify_no_pending_send("send")
        self.encode(rank)
        self.send_request = comm.Isend([self.data, MPI.BYTE], dest=rank, tag=self.tag)

    @classmethod
    def isend_all(cls, rank_msg: dict, comm: MPI.Comm):
        """Send every message in a rank -> message dict to its key."""
        for rank, msg in rank_msg.items():
            msg.isend(rank, comm)

    @staticmethod
    def wait_all_sent(rank_msg: dict):
        """Wait for all messages in the dict to be sent, then clear them."""
        for msg in rank_msg.values():
            msg.send_request.Wait()
            msg.clear()

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    @classmethod
    def probe(cls, comm: MPI.Comm) -> tuple[int, int]:
        """Block until a message of this channel is pending; return (source, nbytes)."""
        status = MPI.Status()
        comm.Probe(source=MPI.ANY_SOURCE, tag=cls.tag, status=status)
        return status.Get_source(), status.Get_count(MPI.BYTE)

    @classmethod
    def iprobe(cls, comm: MPI.Comm):
        """Non-blocking probe. Returns (source, nbytes) or None if nothing is pending."""
        status = MPI.Status()
        if not comm.Iprobe(source=MPI.ANY_SOURCE, tag=cls.tag, status=status):
            return None
        return status.Get_source(), status.Get_count(MPI.BYTE)

    def recv(self, rank: int, size: int, comm: MPI.Comm):
        """Receive a probed message of ``size`` bytes from ``rank`` and decode it."""
        self.data = self._recv_bytes(rank, size, comm)
        self.decode(rank)

    def recv_drop(self, rank: int, size: int, comm: MPI.Comm):
        """Like ``recv`` but throw the message away without decoding."""
        self._recv_bytes(rank, size, comm)
        self.data = b""

    @classmethod
    def recv_all(cls, rank_msg: dict, comm: MPI.Comm):
        """Receive exactly one message from every rank that is a key of ``rank_msg``.

        Each sender is assumed to send at most one message on this channel
        per round; a second message from a sender that already delivered is
        received into the same entry rather than detected.
        """
        recv_left = len(rank_msg)
        while recv_left > 0:
            rank, size = cls.probe(comm)
            if rank not in rank_msg:
                raise UnexpectedMessageError(
                    f"Unexpected message (tag {cls.tag}) from rank {rank}"
                )
            rank_msg[rank].recv(rank, size, comm)
            recv_left -= 1

    def _recv_bytes(self, rank: int, size: int, comm: MPI.Comm) -> bytes:
        if size < 0:
            raise MessageSizeError(f"Negative message size {size} from rank {rank}")
        buf = bytearray(size)
        status = MPI.Status()
        comm.Recv([buf, MPI.BYTE], source=rank, tag=self.tag, status=status)
        count = status.Get_count(MPI.BYTE)
        if count != size:
            raise MessageSizeError(
                f"Received {count} bytes from rank {rank} (tag {self.tag}), expected {size}"
            )
        return bytes(buf)

    # ------------------------------------------------------------------
    # Payload hooks and ownership
    # ------------------------------------------------------------------

    def encode(self, rank: int):
        """Fill ``data`` before sending to ``rank``."""

    def decode(self, rank: int):
        """Interpret ``data`` after receiving from ``rank``."""

    def clear(self):
        self.data = b""
        self.send_request = MPI.REQUEST_NULL

    @property
    def send_pending(self) -> bool:
        return self.send_request != MPI.REQUEST_NULL

    def _verify_no_pending_send(self, action: str):
        if self.send_pending:
            raise PendingSendError(
                f"Cannot {action} message (tag {self.tag}) with a pending send; "
                "call wait_all_sent() first"
            )

    def __copy__(self):
        self._verify_no_pending_send("copy")
        new = self.__class__.__new__(self.__class__)
        new.__dict__.update(self.__dict__)
        new.send_request = MPI.REQUEST_NULL
        return new

    def __deepcopy__(self, memo):
        self._verify_no_pending_send("copy")
        new = self.__class__.__new__(self.__class__)
        memo[id(self)] = new
        for key, value in self.__dict__.items():
            if key != "send_request":
                setattr(new, key, copy.deepcopy(value, memo))
        new.send_request = MPI.REQUEST_NULL
        return new

    def __del__(self):
        request = getattr(self, "send_request", MPI.REQUEST_NULL)
        if request != MPI.REQUEST_NULL:
            log.critical(f"{type(self).__name__} (tag {self.tag}) destroyed with a pending send")
            raise PendingSendError("wait_all_sent() was not called after isend()")
