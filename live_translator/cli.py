"""
Command-line interface for Live Translator.

Provides commands for running a translation session, listing devices, and self-test.
"""

import argparse
import sys
import time
import logging

from .config import load_config, validate_environment, Config
from .audio_devices import (
    CaptureDevice,
    OutputContext,
    find_device_by_name,
    list_audio_devices,
)
from .azure_speech import AZURE_SPEECH_AVAILABLE, AzureTranslationSession
from .session import SessionController, Status
from .transcript import Turn
from .utils import setup_logger, format_device_list

logger = logging.getLogger(__name__)


class ConsolePresenter:
    """Prints status changes, finished turns and in-progress fragments."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def on_status(self, status: Status):
        print(f"[{status.value}]", file=self.stream, flush=True)

    def on_turn(self, turn: Turn):
        print(f"\n  {turn.source}\n  → {turn.target}\n", file=self.stream, flush=True)

    def on_fragment(self, source: str, target: str):
        if source or target:
            print(f"  … {source} | {target}", file=self.stream, flush=True)


def create_controller(config: Config) -> SessionController:
    """Wire the controller to sounddevice devices and Azure Speech."""
    mic_idx = None
    out_idx = None
    if config.audio.mic_device:
        mic_idx = find_device_by_name(config.audio.mic_device, input_device=True)
        if mic_idx is None:
            logger.warning(f"Mic device not found: {config.audio.mic_device}, using default")
    if config.audio.output_device:
        out_idx = find_device_by_name(config.audio.output_device, input_device=False)
        if out_idx is None:
            logger.warning(f"Output device not found: {config.audio.output_device}, using default")

    def remote_factory():
        return AzureTranslationSession(
            speech_key=config.speech.speech_key,
            speech_region=config.speech.speech_region,
            source_language=config.speech.source_language,
            target_language=config.speech.target_language,
            voice_name=config.speech.voice_name,
            input_sample_rate=config.audio.capture_sr,
            barge_in=config.session.barge_in
        )

    def capture_factory(callback):
        return CaptureDevice(
            callback,
            device=mic_idx,
            samplerate=config.audio.capture_sr,
            blocksize=config.audio.capture_blocksize
        )

    def output_factory():
        return OutputContext(device=out_idx, samplerate=config.audio.output_sr, channels=1)

    return SessionController(config, remote_factory, capture_factory, output_factory)


def cmd_list_devices(args):
    """List all available audio devices."""
    print("\n🎤 Enumerating Audio Devices...")

    devices = list_audio_devices()
    print(format_device_list(devices))

    return 0


def cmd_self_test(args):
    """Run self-test to verify components."""
    print("\n🔧 Running Self-Test...\n")

    errors = []

    env_errors = validate_environment()
    if env_errors:
        errors.extend(env_errors)
        for err in env_errors:
            print(f"❌ {err}")
    else:
        print("✅ Environment variables OK")

    print("\n📡 Checking Azure Speech SDK...")
    if AZURE_SPEECH_AVAILABLE:
        print("✅ Azure Speech SDK available")
    else:
        print("❌ Azure Speech SDK not installed")
        errors.append("Azure Speech SDK not available")

    print("\n🎵 Checking audio devices...")
    devices = list_audio_devices()
    input_devices = [d for d in devices if d['max_input_channels'] > 0]
    output_devices = [d for d in devices if d['max_output_channels'] > 0]

    if input_devices:
        print(f"✅ Found {len(input_devices)} input device(s)")
    else:
        print("❌ No input devices found")
        errors.append("No input devices")

    if output_devices:
        print(f"✅ Found {len(output_devices)} output device(s)")
    else:
        print("❌ No output devices found")
        errors.append("No output devices")

    print("\n" + "="*60)
    if errors:
        print(f"❌ Self-test FAILED with {len(errors)} error(s)")
        return 1
    else:
        print("✅ Self-test PASSED - all systems operational")
        return 0


def cmd_run(args):
    """Run a live translation session until Ctrl+C."""
    print("\n🚀 Starting Live Translator...\n")

    try:
        config = load_config(yaml_file=args.config)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        print(f"\n❌ Configuration error: {e}")
        print("\nPlease check your .env file and ensure SPEECH_KEY and SPEECH_REGION are set.")
        return 1

    # Apply CLI overrides
    if args.mic_device:
        config.audio.mic_device = args.mic_device
    if args.output_device:
        config.audio.output_device = args.output_device
    if args.lang_in:
        config.speech.source_language = args.lang_in
    if args.lang_out:
        config.speech.target_language = args.lang_out
    if args.voice:
        config.speech.voice_name = args.voice
    if args.barge_in:
        config.session.barge_in = True
    if args.log_level:
        config.logging.log_level = args.log_level

    setup_logger(
        level=config.logging.log_level,
        log_file=config.logging.log_file
    )

    print(f"Configuration:")
    print(f"  Languages: {config.speech.source_language} → {config.speech.target_language}")
    print(f"  Voice: {config.speech.voice_name or 'None (text only)'}")
    print(f"  Mic Device: {config.audio.mic_device or 'Default'}")
    print(f"  Output Device: {config.audio.output_device or 'Default'}")
    print(f"  Barge-in: {'on' if config.session.barge_in else 'off'}")
    print()

    controller = create_controller(config)
    presenter = ConsolePresenter()
    controller.subscribe(
        on_status=presenter.on_status,
        on_turn=presenter.on_turn,
        on_fragment=presenter.on_fragment
    )

    try:
        controller.start()
        print("Press Ctrl+C to exit\n")

        while controller.status in (Status.CONNECTING, Status.LISTENING):
            time.sleep(0.5)

    except KeyboardInterrupt:
        print("\n\n👋 Shutting down...")

    finally:
        controller.stop()

    print(f"\n{len(controller.history)} turn(s) translated")

    if controller.status is Status.ERROR:
        print(f"\n❌ {controller.current_target}")
        return 1
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Live Translator - real-time speech translation with synthesized playback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List available audio devices
  python -m live_translator.cli list-devices

  # Run self-test
  python -m live_translator.cli self-test

  # Translate Traditional Chinese speech to English
  python -m live_translator.cli run

  # Run with custom languages and devices
  python -m live_translator.cli run --lang-in uk-UA --lang-out en \\
    --voice en-GB-RyanNeural --output-device "Headphones"
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    parser_list = subparsers.add_parser(
        'list-devices',
        help='List all available audio devices'
    )
    parser_list.set_defaults(func=cmd_list_devices)

    parser_test = subparsers.add_parser(
        'self-test',
        help='Run self-test to verify components'
    )
    parser_test.set_defaults(func=cmd_self_test)

    parser_run = subparsers.add_parser(
        'run',
        help='Run a live translation session'
    )
    parser_run.add_argument(
        '--config',
        type=str,
        help='Path to config.yaml'
    )
    parser_run.add_argument(
        '--mic-device',
        type=str,
        help='Microphone device name (substring match)'
    )
    parser_run.add_argument(
        '--output-device',
        type=str,
        help='Playback device name (substring match)'
    )
    parser_run.add_argument(
        '--lang-in',
        type=str,
        help='Spoken language code (default: zh-TW)'
    )
    parser_run.add_argument(
        '--lang-out',
        type=str,
        help='Translation language code (default: en)'
    )
    parser_run.add_argument(
        '--voice',
        type=str,
        help='Voice for synthesized translation (default: en-US-JennyNeural)'
    )
    parser_run.add_argument(
        '--barge-in',
        action='store_true',
        help='Cut playback when new speech starts'
    )
    parser_run.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
