"""CLI interface for the ChordiSpeak processing client."""
import sys
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from chordispeak import __version__
from chordispeak.application.factories import create_client, create_connectivity_monitor, create_session
from chordispeak.application.task_monitor import MonitorState, TaskSnapshot
from chordispeak.domain.exceptions import DomainException, TransportError
from chordispeak.domain.models import PipelineStage, StepState
from chordispeak.infrastructure.config import ConfigLoader
from chordispeak.shared.logging import setup_logger, get_logger
from chordispeak.shared.metrics import MetricsCollector

_CHECK_MARKS = {
    StepState.DONE: "[x]",
    StepState.CURRENT: "[>]",
    StepState.PENDING: "[ ]",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chordispeak",
        description="Submit audio to the ChordiSpeak service and collect chord vocals"
    )
    parser.add_argument('--config', type=Path, help='Config YAML file')
    parser.add_argument('--base-url', help='Service base URL')
    parser.add_argument('--poll-interval', type=float, help='Seconds between status polls')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('health', help='Check server health')

    process = sub.add_parser('process', help='Upload a file and wait for the result')
    process.add_argument('file', type=Path, help='Audio file to process')
    process.add_argument('--output', '-o', type=Path, default=Path('output'),
                         help='Directory for the processed audio (default: ./output)')

    status = sub.add_parser('status', help='Show the status of a task')
    status.add_argument('task_id')

    cancel = sub.add_parser('cancel', help='Cancel a task')
    cancel.add_argument('task_id')
    return parser


def print_checklist(step: str) -> None:
    for stage, state in PipelineStage.checklist(step):
        print(f"  {_CHECK_MARKS[state]} {stage.label}")


class ProgressPrinter:
    """Logs upload progress in 10% increments and job updates as they change."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._upload_decile = -1
        self._last_line = None

    def upload(self, fraction: float) -> None:
        decile = int(fraction * 10)
        if decile > self._upload_decile:
            self._upload_decile = decile
            self._logger.info(f"Upload: {fraction * 100:.0f}%")

    def update(self, snapshot: TaskSnapshot) -> None:
        job = snapshot.job
        if job is None:
            return
        line = f"[{snapshot.state.value}] {job.step} - {job.estimated_progress() * 100:.0f}%"
        if line != self._last_line:
            self._last_line = line
            self._logger.info(line)


def run_process(args, config, logger) -> int:
    metrics = MetricsCollector()
    printer = ProgressPrinter(logger)

    with create_session(config, metrics=metrics) as session:
        session.on_update(printer.update)
        handle = session.submit(args.file, on_progress=printer.upload)
        logger.info(f"Submitted {handle.filename} as task {handle.job_id}")

        try:
            state = session.wait()
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling task")
            if session.state is MonitorState.POLLING:
                try:
                    session.cancel()
                except TransportError as e:
                    logger.error(f"Cancel failed: {e}")
            raise

        logger.debug(f"Metrics: {metrics.get_summary()}")

        if state is MonitorState.COMPLETED:
            audio, timeline = session.result()
            output = session.monitor.result().save(args.output)
            logger.info(f"✅ Processed audio saved to {output} ({len(audio)} bytes)")
            print(f"\nChord progression ({len(timeline)} chords):")
            for event in timeline:
                print(f"  {event}")
            print("\nMost common chords:")
            for label, count in timeline.most_common():
                print(f"  {label}: {count} times")
            return 0

        if state is MonitorState.INTERRUPTED:
            logger.error(f"Lost track of task {handle.job_id}: {session.monitor.error}")
            return 1

        if state is MonitorState.CANCELLED:
            logger.warning(f"Task {handle.job_id} was cancelled")
            return 1

        logger.error(f"❌ Processing failed: {session.monitor.error}")
        return 1


def run_single_call(args, config, logger) -> int:
    connectivity = create_connectivity_monitor(config)
    try:
        client = create_client(config, connectivity)

        if args.command == 'health':
            health = client.check_health()
            print(health)
            return 0 if health.is_healthy else 1

        if args.command == 'status':
            job = client.get_status(args.task_id)
            print(job)
            if job.error:
                print(f"Error: {job.error}")
            print_checklist(job.step)
            return 0

        client.cancel(args.task_id)
        logger.info(f"Task {args.task_id} cancelled")
        return 0
    finally:
        connectivity.stop()


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    # Pick up CHORDISPEAK_* settings from a local .env; existing variables win
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logger('chordispeak', level=log_level)
    logger = get_logger('chordispeak.cli')

    try:
        overrides = {
            'base_url': args.base_url,
            'poll_interval': args.poll_interval,
        }
        if args.verbose:
            overrides['log_level'] = 'DEBUG'
        config = ConfigLoader(config_path=args.config).load(overrides=overrides)
        setup_logger('chordispeak', level=config.log_level)

        if args.command == 'process':
            return run_process(args, config, logger)
        return run_single_call(args, config, logger)

    except DomainException as e:
        logger.error(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
