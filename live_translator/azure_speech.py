"""
Azure Speech SDK translation session.

Wraps a TranslationRecognizer with a 16 kHz mono int16 push stream behind the
RemoteSession contract: recognized speech becomes source/target fragments,
synthesized translation audio becomes audio payloads.
"""

import io
import logging
import threading
import wave
from typing import Optional, Tuple

from .codec import AudioFrame
from .errors import SessionOpenError
from .transport import (
    AudioPayload,
    EventCallback,
    Interrupted,
    RemoteSession,
    SessionClosed,
    SessionError,
    SessionOpened,
    SourceTranscript,
    TargetTranscript,
    TurnComplete,
)

logger = logging.getLogger(__name__)

try:
    import azure.cognitiveservices.speech as speechsdk
    AZURE_SPEECH_AVAILABLE = True
except ImportError:
    AZURE_SPEECH_AVAILABLE = False
    logger.warning("Azure Speech SDK not available")

# Translation synthesis audio is 16 kHz PCM16 unless a RIFF header says otherwise
SYNTHESIS_SAMPLE_RATE = 16000


def split_wav_payload(audio: bytes, default_rate: int = SYNTHESIS_SAMPLE_RATE) -> Tuple[bytes, int, int]:
    """
    Strip a RIFF/WAV header from synthesized audio if present.

    Args:
        audio: Synthesized audio bytes
        default_rate: Sample rate assumed for headerless PCM

    Returns:
        (pcm16 bytes, sample rate, channels)
    """
    if audio[:4] != b"RIFF":
        return audio, default_rate, 1

    with wave.open(io.BytesIO(audio), 'rb') as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"Unsupported sample width: {wf.getsampwidth()}")
        return wf.readframes(wf.getnframes()), wf.getframerate(), wf.getnchannels()


class AzureTranslationSession(RemoteSession):
    """
    Continuous speech translation against Azure Speech.

    Event mapping:
        session_started              -> SessionOpened
        recognized (TranslatedSpeech) -> SourceTranscript + TargetTranscript
        synthesizing with audio       -> AudioPayload
        synthesizing without audio    -> TurnComplete
        canceled (error)              -> SessionError
        session_stopped / canceled    -> SessionClosed
    """

    def __init__(
        self,
        speech_key: str,
        speech_region: str,
        source_language: str = "zh-TW",
        target_language: str = "en",
        voice_name: Optional[str] = "en-US-JennyNeural",
        input_sample_rate: int = 16000,
        barge_in: bool = False
    ):
        """
        Initialize the session (nothing is connected yet).

        Args:
            speech_key: Azure Speech API key
            speech_region: Azure region (e.g., 'westeurope')
            source_language: Recognition language (e.g., 'zh-TW')
            target_language: Translation language (e.g., 'en')
            voice_name: Voice for synthesized translation, None for text only
            input_sample_rate: Sample rate of pushed PCM16 frames
            barge_in: Emit Interrupted when a new utterance starts
        """
        if not AZURE_SPEECH_AVAILABLE:
            raise RuntimeError("Azure Speech SDK not available")

        self.speech_key = speech_key
        self.speech_region = speech_region
        self.source_language = source_language
        self.target_language = target_language
        self.voice_name = voice_name
        self.input_sample_rate = input_sample_rate
        self.barge_in = barge_in

        self.push_stream: Optional["speechsdk.audio.PushAudioInputStream"] = None
        self.recognizer: Optional["speechsdk.translation.TranslationRecognizer"] = None

        self._on_event: Optional[EventCallback] = None
        self._start_future = None
        self._in_utterance = False
        self._closed = False
        self._lock = threading.Lock()

        logger.info(
            f"AzureTranslationSession: {source_language} -> {target_language}, "
            f"voice={voice_name or 'none'}"
        )

    def open(self, on_event: EventCallback):
        """Create the recognizer and start continuous translation."""
        with self._lock:
            if self._closed:
                raise SessionOpenError("Session already closed")
            if self.recognizer is not None:
                logger.warning("Session already opened")
                return

            self._on_event = on_event

            try:
                stream_format = speechsdk.audio.AudioStreamFormat(
                    samples_per_second=self.input_sample_rate,
                    bits_per_sample=16,
                    channels=1
                )
                self.push_stream = speechsdk.audio.PushAudioInputStream(stream_format)
                audio_config = speechsdk.audio.AudioConfig(stream=self.push_stream)

                translation_config = speechsdk.translation.SpeechTranslationConfig(
                    subscription=self.speech_key,
                    region=self.speech_region
                )
                translation_config.speech_recognition_language = self.source_language
                translation_config.add_target_language(self.target_language)
                if self.voice_name:
                    translation_config.voice_name = self.voice_name

                self.recognizer = speechsdk.translation.TranslationRecognizer(
                    translation_config=translation_config,
                    audio_config=audio_config
                )

                self.recognizer.session_started.connect(self._on_session_started)
                self.recognizer.recognizing.connect(self._on_recognizing)
                self.recognizer.recognized.connect(self._on_recognized)
                self.recognizer.synthesizing.connect(self._on_synthesizing)
                self.recognizer.canceled.connect(self._on_canceled)
                self.recognizer.session_stopped.connect(self._on_session_stopped)

                self._start_future = self.recognizer.start_continuous_recognition_async()
            except Exception as e:
                self.recognizer = None
                self.push_stream = None
                raise SessionOpenError(f"Failed to start Azure translation: {e}") from e

            logger.info("Translation session opening")

    def send(self, frame: AudioFrame):
        """Push one PCM16 frame to the recognizer."""
        push_stream = self.push_stream
        if self._closed or push_stream is None:
            logger.debug("Dropping frame - session not open")
            return
        push_stream.write(frame.data)

    def close(self):
        """Stop recognition and close the push stream."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            recognizer, push_stream = self.recognizer, self.push_stream
            start_future = self._start_future

        try:
            if start_future is not None:
                # Let a pending open finish so the stop request is honoured
                start_future.get()
            if recognizer is not None:
                recognizer.stop_continuous_recognition_async().get()
        finally:
            if push_stream is not None:
                push_stream.close()
            self.push_stream = None
            logger.info("Translation session closed")

    def _emit(self, event):
        if self._on_event is not None:
            self._on_event(event)

    def _on_session_started(self, evt):
        logger.info(f"Session started: {getattr(evt, 'session_id', '')}")
        self._emit(SessionOpened())

    def _on_recognizing(self, evt):
        if self.barge_in and not self._in_utterance:
            logger.debug("New utterance started - interrupting playback")
            self._emit(Interrupted())
        self._in_utterance = True

    def _on_recognized(self, evt):
        self._in_utterance = False
        result = evt.result
        if result.reason == speechsdk.ResultReason.TranslatedSpeech:
            translation = result.translations.get(self.target_language, "")

            logger.info(f"Recognized: {result.text}")
            logger.info(f"Translated: {translation}")

            if result.text:
                self._emit(SourceTranscript(result.text))
            if translation:
                self._emit(TargetTranscript(translation))
            if not self.voice_name:
                self._emit(TurnComplete())
        elif result.reason == speechsdk.ResultReason.NoMatch:
            logger.debug("No speech recognized")

    def _on_synthesizing(self, evt):
        audio = evt.result.audio
        if not audio:
            # Empty audio marks the end of synthesis for the utterance
            self._emit(TurnComplete())
            return

        try:
            pcm, sample_rate, channels = split_wav_payload(audio)
        except (wave.Error, ValueError, EOFError) as e:
            logger.warning(f"Unreadable synthesis audio ({len(audio)} bytes): {e}")
            return

        self._emit(AudioPayload(data=pcm, sample_rate=sample_rate, channels=channels))

    def _on_canceled(self, evt):
        details = evt.cancellation_details
        logger.warning(f"Recognition canceled: {details.reason}")
        if details.reason == speechsdk.CancellationReason.Error:
            self._emit(SessionError(details.error_details or str(details.code)))
        else:
            self._emit(SessionClosed())

    def _on_session_stopped(self, evt):
        logger.info("Session stopped")
        self._emit(SessionClosed())
