"""
Duplex real-time translation session.

SessionController owns one Session at a time and drives it through
Idle -> Connecting -> Listening -> Idle, or into Error on failure.

Threads involved:
    - capture callback (sounddevice input thread) -> Session.on_captured
    - remote session callbacks (SDK threads) -> Session.post
    - one inbound worker per Session, handling events in delivery order
    - output callback (sounddevice output thread) -> OutputMixer.render
    - caller threads invoking start()/stop()
"""

import enum
import logging
import queue
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

import numpy as np

from .codec import AudioFrame, encode_frame, decode_pcm16
from .config import Config
from .errors import (
    AcquisitionError,
    DecodeError,
    LiveTranslatorError,
    SessionOpenError,
    TeardownError,
    TransportError,
)
from .playback import PlaybackScheduler
from .transcript import TranscriptAggregator, Track, Turn
from .transport import (
    AudioPayload,
    Interrupted,
    RemoteSession,
    SessionClosed,
    SessionError,
    SessionEvent,
    SessionOpened,
    SourceTranscript,
    TargetTranscript,
    TurnComplete,
)
from .utils import LatencyStats, dump_wav, timed

logger = logging.getLogger(__name__)

_STOP = object()


class Status(str, enum.Enum):
    IDLE = "Idle"
    CONNECTING = "Connecting..."
    LISTENING = "Listening"
    ERROR = "Error"


ACTIVE_STATES = (Status.CONNECTING, Status.LISTENING)


class Session:
    """
    One live connection with its devices, playback timeline and event worker.

    Outbound frames captured before the remote side opens are kept in a
    bounded buffer (oldest dropped first) and flushed in order on open.
    """

    def __init__(self, sample_rate: int, pending_frame_limit: int):
        self.sample_rate = sample_rate
        self.capture = None
        self.output = None
        self.scheduler: Optional[PlaybackScheduler] = None
        self.remote: Optional[RemoteSession] = None

        self.live = False
        self.closed = False
        self.frames_sent = 0
        self.dropped_frames = 0
        self.dropped_chunks = 0
        self.decode_stats = LatencyStats("Decode")

        self._pending: Deque[AudioFrame] = deque(maxlen=pending_frame_limit)
        self._send_lock = threading.Lock()
        self._send_failed = False

        self._events: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    def on_captured(self, samples: np.ndarray):
        """Capture callback: encode one window and send or buffer it."""
        frame = encode_frame(samples, self.sample_rate)

        with self._send_lock:
            if self.closed:
                return
            if not self.live:
                if len(self._pending) == self._pending.maxlen:
                    self.dropped_frames += 1
                self._pending.append(frame)
                return
            self._send(frame)

    def go_live(self):
        """Flush buffered frames in capture order, then send directly."""
        with self._send_lock:
            if self.closed or self.live:
                return
            pending = list(self._pending)
            self._pending.clear()
            for frame in pending:
                self._send(frame)
            self.live = True

        logger.info(f"Streaming audio ({len(pending)} buffered frame(s) flushed)")
        if self.dropped_frames:
            logger.warning(f"Dropped {self.dropped_frames} frame(s) while connecting")

    def _send(self, frame: AudioFrame):
        if self._send_failed:
            return
        try:
            self.remote.send(frame)
            self.frames_sent += 1
        except Exception as e:
            self._send_failed = True
            logger.error(f"Failed to send audio frame: {e}")
            self.post(SessionError(f"Audio send failed: {e}"))

    def close_gate(self):
        """Stop accepting outbound frames."""
        with self._send_lock:
            self.closed = True
            self._pending.clear()

    def post(self, event: SessionEvent):
        """Queue an inbound event. Safe from any thread."""
        self._events.put(event)

    @property
    def pending_events(self) -> int:
        """Events queued or being handled."""
        return self._events.unfinished_tasks

    def start_worker(self, handler: Callable[["Session", SessionEvent], None]):
        def _run():
            while True:
                event = self._events.get()
                try:
                    if event is _STOP:
                        break
                    handler(self, event)
                except Exception as e:
                    logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)
                finally:
                    self._events.task_done()

        self._worker = threading.Thread(target=_run, name="session-events", daemon=True)
        self._worker.start()

    def stop_worker(self):
        self._events.put(_STOP)

    def join_worker(self, timeout: float):
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Event worker did not finish in time")


class SessionController:
    """
    Start/stop and status surface for the live translation session.

    Args:
        config: Application configuration
        remote_factory: Creates a new RemoteSession for each start()
        capture_factory: Creates a capture device given the frame callback
        output_factory: Creates an output context (clock + scheduling)
    """

    def __init__(
        self,
        config: Config,
        remote_factory: Callable[[], RemoteSession],
        capture_factory: Callable[[Callable[[np.ndarray], None]], object],
        output_factory: Callable[[], object]
    ):
        self.config = config
        self._remote_factory = remote_factory
        self._capture_factory = capture_factory
        self._output_factory = output_factory

        self._status = Status.IDLE
        self._session: Optional[Session] = None
        self._aggregator = TranscriptAggregator()
        self._history: List[Turn] = []
        self._error_detail: Optional[str] = None
        self._lock = threading.RLock()
        # Serializes start, stop and remote-initiated ends; taken before _lock
        self._lifecycle = threading.RLock()

        self.on_status: Optional[Callable[[Status], None]] = None
        self.on_turn: Optional[Callable[[Turn], None]] = None
        self.on_fragment: Optional[Callable[[str, str], None]] = None

    def subscribe(
        self,
        on_status: Optional[Callable[[Status], None]] = None,
        on_turn: Optional[Callable[[Turn], None]] = None,
        on_fragment: Optional[Callable[[str, str], None]] = None
    ):
        """Register presentation callbacks. They must not block or call start()/stop()."""
        self.on_status = on_status
        self.on_turn = on_turn
        self.on_fragment = on_fragment

    @property
    def status(self) -> Status:
        with self._lock:
            return self._status

    @property
    def history(self) -> Tuple[Turn, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def current_source(self) -> str:
        return self._aggregator.source_text

    @property
    def current_target(self) -> str:
        """In-progress translation, or the error that ended the session."""
        with self._lock:
            if self._status is Status.ERROR and self._error_detail:
                return f"Error: {self._error_detail}"
            return self._aggregator.target_text

    @property
    def error_detail(self) -> Optional[str]:
        with self._lock:
            return self._error_detail

    @property
    def session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def start(self) -> Status:
        """
        Acquire devices and open a new remote session.

        Ignored while a session is connecting or listening.

        Returns:
            Status after the attempt (Connecting or Error)
        """
        with self._lifecycle:
            with self._lock:
                if self._status in ACTIVE_STATES:
                    logger.warning("Session already active")
                    return self._status

                self._history = []
                self._aggregator = TranscriptAggregator()
                self._error_detail = None

                audio = self.config.audio
                session = Session(audio.capture_sr, audio.pending_frame_limit)
                self._session = session
                error = self._open(session)
                if error is None:
                    logger.info("Session connecting")
                    return self._status

            self._fail(session, error)
            return self.status

    def _open(self, session: Session) -> Optional[LiveTranslatorError]:
        try:
            session.capture = self._capture_factory(session.on_captured)
            session.capture.start()
            session.output = self._output_factory()
            session.output.start()
        except Exception as e:
            return e if isinstance(e, AcquisitionError) else AcquisitionError(str(e))

        session.scheduler = PlaybackScheduler(session.output)
        self._set_status(Status.CONNECTING)
        session.start_worker(self._handle_event)

        try:
            session.remote = self._remote_factory()
            session.remote.open(session.post)
        except Exception as e:
            return e if isinstance(e, SessionOpenError) else SessionOpenError(str(e))
        return None

    def stop(self) -> Status:
        """
        Close the remote session and release every resource.

        No-op unless connecting or listening. Status stays readable while
        the remote side and devices are being released.
        """
        with self._lifecycle:
            with self._lock:
                if self._status not in ACTIVE_STATES:
                    return self._status
                session = self._session
                self._detach(session)

            self._teardown(session)
            with self._lock:
                self._set_status(Status.IDLE)

        session.join_worker(self.config.session.close_timeout_s)
        logger.info("Session stopped")
        return Status.IDLE

    def _is_current(self, session: Session) -> bool:
        return session is self._session and self._status in ACTIVE_STATES

    def _handle_event(self, session: Session, event: SessionEvent):
        """Worker-thread dispatch of one inbound event."""
        if isinstance(event, AudioPayload):
            self._play(session, event)
            return
        if isinstance(event, (SessionError, SessionClosed)):
            self._end(session, event)
            return

        with self._lock:
            if not self._is_current(session):
                logger.debug(f"Ignoring {type(event).__name__} from inactive session")
                return

            if isinstance(event, SessionOpened):
                self._set_status(Status.LISTENING)
                session.go_live()
            elif isinstance(event, SourceTranscript):
                self._aggregator.append_fragment(Track.SOURCE, event.text)
                self._notify_fragment()
            elif isinstance(event, TargetTranscript):
                self._aggregator.append_fragment(Track.TARGET, event.text)
                self._notify_fragment()
            elif isinstance(event, Interrupted):
                logger.info("Remote interrupted - flushing playback")
                session.scheduler.flush()
            elif isinstance(event, TurnComplete):
                self._complete_turn()
            else:
                logger.warning(f"Unknown session event: {event!r}")

    def _end(self, session: Session, event: SessionEvent):
        """Remote-initiated end of the session: an error or a close."""
        with self._lifecycle:
            with self._lock:
                if not self._is_current(session):
                    logger.debug(f"Ignoring {type(event).__name__} from inactive session")
                    return

            if isinstance(event, SessionError):
                self._fail(session, TransportError(event.detail))
                return

            logger.info("Connection closed.")
            with self._lock:
                self._detach(session)
            self._teardown(session)
            with self._lock:
                self._set_status(Status.IDLE)

    def _play(self, session: Session, event: AudioPayload):
        audio = self.config.audio
        try:
            with timed(session.decode_stats):
                buffer = decode_pcm16(
                    event.data,
                    event.sample_rate or audio.payload_sr,
                    event.channels or audio.payload_channels,
                    output_rate=audio.output_sr,
                    encoding=event.encoding
                )
        except DecodeError as e:
            session.dropped_chunks += 1
            logger.warning(f"Dropping audio chunk: {e}")
            return

        with self._lock:
            if not self._is_current(session):
                return
            session.scheduler.schedule(buffer.samples, buffer.duration)

        if self.config.logging.dump_audio:
            dump_wav(buffer.samples, buffer.sample_rate, self.config.logging.dump_path, "inbound")

    def _complete_turn(self):
        turn = self._aggregator.complete_turn()
        if turn is None:
            return
        self._history.append(turn)
        logger.info(f"Turn {turn.id}: {turn.source!r} -> {turn.target!r}")
        self._notify(self.on_turn, turn)
        self._notify_fragment()

    def _fail(self, session: Session, error: LiveTranslatorError):
        logger.error(f"Session failed: {type(error).__name__}: {error}")
        with self._lock:
            self._error_detail = str(error)
            self._set_status(Status.ERROR)
            self._detach(session)
        self._teardown(session)
        self._notify_fragment()

    def _detach(self, session: Session):
        """Make the session non-current and stop its outbound frames."""
        if session is self._session:
            self._session = None
        session.close_gate()

    def _teardown(self, session: Session):
        """Best-effort release of everything the session holds."""
        steps = [
            ("remote close", session.remote.close if session.remote else None),
            ("capture release", session.capture.release if session.capture else None),
            ("playback flush", session.scheduler.flush if session.scheduler else None),
            ("output release", session.output.release if session.output else None),
        ]
        for name, step in steps:
            if step is None:
                continue
            try:
                step()
            except Exception as e:
                logger.warning(str(TeardownError(f"{name} failed: {e}")))

        session.stop_worker()
        session.decode_stats.log_summary()
        logger.info(
            f"Session torn down: sent={session.frames_sent} frames, "
            f"dropped={session.dropped_frames} frames, {session.dropped_chunks} chunks"
        )

    def _set_status(self, status: Status):
        if status is self._status:
            return
        logger.info(f"Status: {self._status.value} -> {status.value}")
        self._status = status
        self._notify(self.on_status, status)

    def _notify_fragment(self):
        self._notify(self.on_fragment, self.current_source, self.current_target)

    def _notify(self, callback, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in listener callback: {e}", exc_info=True)
