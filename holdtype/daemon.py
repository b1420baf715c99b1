"""
holdtype daemon

Main event loop that:
- Listens for the push-to-talk hotkey
- Records audio while the key is held
- Transcribes off the event loop (thread pool or worker process)
- Types or copies the resulting text
- Mirrors its state to a file for status bars
"""

import asyncio
import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from holdtype.audio import AudioCapture, create_capture
from holdtype.config import AudioConfig, Config
from holdtype.errors import AudioCaptureError, OutputError, TranscribeError
from holdtype.hotkey import HotkeyEvent, HotkeyListener, create_listener
from holdtype.ipc import SAMPLE_RATE
from holdtype.notify import send_notification
from holdtype.output import TextOutput, create_output_chain, create_post_processor, output_with_fallback
from holdtype.state import Idle, Outputting, Recording, State, StateFile, Transcribing
from holdtype.transcriber import Transcriber, create_transcriber

logger = logging.getLogger(__name__)

# Shorter recordings are treated as accidental presses
MIN_RECORDING_SECS = 0.3
TIMEOUT_CHECK_INTERVAL = 0.1

CaptureFactory = Callable[[AudioConfig], AudioCapture]
Notifier = Callable[[str, str], None]


class Daemon:
    """
    holdtype daemon

    A single asyncio task owns the session state. Each loop iteration waits
    for the first of:
    - a hotkey event
    - the shutdown signal
    - the in-flight transcription or output job
    - the recording timeout tick (only while recording)
    and services exactly one of them.
    """

    def __init__(
        self,
        config: Config,
        transcriber: Optional[Transcriber] = None,
        hotkey_listener: Optional[HotkeyListener] = None,
        capture_factory: CaptureFactory = create_capture,
        output_chain: Optional[Sequence[TextOutput]] = None,
        notifier: Notifier = send_notification,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize daemon

        Args:
            config: Daemon configuration
            transcriber: Transcriber to use (default: built from config at startup)
            hotkey_listener: Hotkey source (default: pynput listener from config)
            capture_factory: Creates a fresh audio capture per utterance
            output_chain: Outputs tried in order (default: built from config)
            notifier: Desktop notification callable (title, body)
            clock: Monotonic clock in seconds
        """
        self.config = config
        self._transcriber = transcriber
        self._hotkey_listener = hotkey_listener
        self._capture_factory = capture_factory
        self._output_chain: List[TextOutput] = list(
            output_chain if output_chain is not None else create_output_chain(config.output)
        )
        self._post_processor = create_post_processor(config.output.post_process)
        self._notifier = notifier
        self._clock = clock
        self._state_file = StateFile(config.resolve_state_file())

        self._state: State = Idle()
        self._capture: Optional[AudioCapture] = None
        self._job: Optional[asyncio.Future] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._running = False
        self._abandoned = threading.Event()

    @property
    def state(self) -> State:
        return self._state

    @property
    def running(self) -> bool:
        """True once the event loop is servicing events"""
        return self._running

    def request_shutdown(self) -> None:
        """Ask the event loop to exit (call from the loop's thread)"""
        if self._shutdown is not None and not self._shutdown.is_set():
            logger.info("Received interrupt signal, shutting down...")
            self._shutdown.set()

    async def run(self, install_signal_handlers: bool = True) -> None:
        """
        Run the daemon until shutdown is requested

        Raises:
            HoldtypeError: If the hotkey listener or transcriber cannot be initialized
        """
        logger.info("Starting holdtype daemon")
        self._loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="holdtype-job")

        hotkey = self.config.hotkey
        logger.info(f"Hotkey: {hotkey.key} ({hotkey.mode.replace('_', ' ')})")
        logger.info(f"Output chain: {' -> '.join(o.name for o in self._output_chain) or 'none'}")
        if self._state_file.enabled:
            logger.info(f"State file: {self._state_file.path}")

        try:
            if self._hotkey_listener is None:
                self._hotkey_listener = create_listener(hotkey.key, hotkey.modifiers)

            if self._transcriber is None:
                logger.info(f"Loading transcription model: {self.config.whisper.model}")
                self._transcriber = await self._loop.run_in_executor(
                    self._executor, create_transcriber, self.config.whisper, self.config.config_path
                )
                logger.info("Model ready for voice input")

            events = self._hotkey_listener.start(self._loop)
            try:
                if install_signal_handlers:
                    self._install_signal_handlers()
                self._set_state(Idle())
                if hotkey.mode == "toggle":
                    logger.info(f"Listening for hotkey: {hotkey.key} (press to start, press again to stop)")
                else:
                    logger.info(f"Listening for hotkey: {hotkey.key} (hold to record, release to transcribe)")

                self._running = True
                await self._event_loop(events)
            finally:
                self._running = False
                if install_signal_handlers:
                    self._remove_signal_handlers()
                self._hotkey_listener.stop()
                self._abandon_utterance()
                self._state_file.remove()
        finally:
            self._executor.shutdown(wait=False)

        logger.info("Daemon stopped")

    async def _event_loop(self, events: "asyncio.Queue[HotkeyEvent]") -> None:
        next_event = asyncio.ensure_future(events.get())
        shutdown = asyncio.ensure_future(self._shutdown.wait())
        tick: Optional[asyncio.Future] = None

        try:
            while True:
                sources = {next_event, shutdown}
                if isinstance(self._state, Recording):
                    if tick is None:
                        tick = asyncio.ensure_future(asyncio.sleep(TIMEOUT_CHECK_INTERVAL))
                    sources.add(tick)
                elif tick is not None:
                    tick.cancel()
                    tick = None
                if self._job is not None:
                    sources.add(self._job)

                done, _ = await asyncio.wait(sources, return_when=asyncio.FIRST_COMPLETED)

                if shutdown in done:
                    break
                if next_event in done:
                    event = next_event.result()
                    next_event = asyncio.ensure_future(events.get())
                    self._handle_hotkey(event)
                elif self._job is not None and self._job in done:
                    self._handle_job_done()
                elif tick is not None and tick in done:
                    tick = None
                    self._check_timeout()
        finally:
            for task in (next_event, shutdown, tick):
                if task is not None:
                    task.cancel()

    def _handle_hotkey(self, event: HotkeyEvent) -> None:
        toggle = self.config.hotkey.mode == "toggle"
        logger.debug(f"Hotkey {event.value} (state: {self._state.name})")

        if event is HotkeyEvent.PRESSED:
            if isinstance(self._state, Idle):
                self._start_recording()
            elif toggle and isinstance(self._state, Recording):
                self._stop_recording()
            else:
                logger.debug(f"Ignoring hotkey press while {self._state.name}")
        elif event is HotkeyEvent.RELEASED:
            if not toggle and isinstance(self._state, Recording):
                self._stop_recording()

    def _start_recording(self) -> None:
        try:
            capture = self._capture_factory(self.config.audio)
            capture.start()
        except AudioCaptureError as e:
            logger.error(f"Failed to start audio capture: {e}")
            return

        self._capture = capture
        self._set_state(Recording(started_at=self._clock()))
        logger.info("Recording started")

        if self.config.output.notification.on_recording_start:
            self._notify("Push to Talk Active", "Recording...")

    def _stop_recording(self) -> None:
        state = self._state
        if not isinstance(state, Recording):
            return
        logger.info(f"Recording stopped ({state.duration(self._clock()):.1f}s)")

        capture, self._capture = self._capture, None
        if capture is None:
            self._set_state(Idle())
            return

        try:
            samples = capture.stop()
        except AudioCaptureError as e:
            logger.warning(f"Recording error: {e}")
            self._set_state(Idle())
            return

        audio_duration = len(samples) / SAMPLE_RATE
        if audio_duration < MIN_RECORDING_SECS:
            logger.debug(f"Recording too short ({audio_duration:.2f}s), ignoring")
            self._set_state(Idle())
            return

        logger.info(f"Transcribing {audio_duration:.1f}s of audio...")
        self._set_state(Transcribing(audio=samples))

        if self.config.output.notification.on_recording_stop:
            self._notify("Push to Talk Inactive", "Transcribing...")

        self._job = self._loop.run_in_executor(self._executor, self._transcriber.transcribe, samples)

    def _check_timeout(self) -> None:
        state = self._state
        if not isinstance(state, Recording):
            return

        max_duration = self.config.audio.max_duration_secs
        if state.duration(self._clock()) <= max_duration:
            return

        logger.warning(f"Recording timeout ({max_duration:.0f}s limit), stopping")
        capture, self._capture = self._capture, None
        if capture is not None:
            try:
                capture.stop()
            except AudioCaptureError as e:
                logger.debug(f"Error stopping timed-out capture: {e}")
        self._set_state(Idle())

    def _handle_job_done(self) -> None:
        job, self._job = self._job, None

        if isinstance(self._state, Transcribing):
            try:
                text = job.result()
            except TranscribeError as e:
                logger.error(f"Transcription failed: {e}")
                self._set_state(Idle())
                return
            except Exception as e:
                logger.error(f"Transcription task failed: {e}")
                self._set_state(Idle())
                return

            text = text.strip()
            if not text:
                logger.debug("Transcription was empty")
                self._set_state(Idle())
                return

            logger.info(f"Transcribed: {text!r}")
            self._set_state(Outputting(text=text))
            self._job = self._loop.run_in_executor(self._executor, self._deliver, text)

        elif isinstance(self._state, Outputting):
            try:
                job.result()
            except OutputError as e:
                logger.error(f"Output failed: {e}")
            except Exception as e:
                logger.error(f"Output task failed: {e}")
            self._set_state(Idle())

    def _deliver(self, text: str) -> Optional[str]:
        """Post-process and output text (runs on the job executor)"""
        if self._post_processor is not None:
            text = self._post_processor.process(text)

        if self._abandoned.is_set():
            logger.debug("Utterance abandoned during shutdown, not delivering text")
            return None

        backend = output_with_fallback(self._output_chain, text)

        if self.config.output.notification.on_transcription:
            preview = text if len(text) <= 100 else text[:97] + "..."
            self._notify("Transcribed", preview)
        return backend

    def _abandon_utterance(self) -> None:
        # Checked by a _deliver still running on the executor thread
        self._abandoned.set()
        if self._job is not None and not self._job.done():
            logger.warning(f"Shutting down while {self._state.name}, abandoning in-flight work")
            self._job.cancel()
        self._job = None

        if self._transcriber is not None:
            self._transcriber.close()

        capture, self._capture = self._capture, None
        if capture is not None:
            try:
                capture.stop()
            except AudioCaptureError as e:
                logger.debug(f"Error stopping capture during shutdown: {e}")

        self._state = Idle()

    def _set_state(self, state: State) -> None:
        self._state = state
        if state.reported:
            self._state_file.write(state.name)

    def _notify(self, title: str, body: str) -> None:
        try:
            self._notifier(title, body)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform; KeyboardInterrupt still applies
                pass

    def _remove_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


def run_daemon(config: Config) -> None:
    """
    Run the holdtype daemon (blocking)

    Args:
        config: Daemon configuration
    """
    daemon = Daemon(config)
    asyncio.run(daemon.run())
