#!/usr/bin/env python3
"""
Main Pipeline Orchestrator
===========================
Orchestrates the strace-to-Perfetto conversion.

Pipeline stages:
1. Trace Capture - Run strace around a command or attached pid
2. Thread Metadata - Name the threads of an attached process
3. Reconciliation - Turn strace lines into timeline events
4. Save - Write the trace-event JSON document

Author: strace-perfetto Project
Date: October 16, 2026
"""

import sys
import logging
import argparse
from pathlib import Path
from datetime import datetime
from typing import List, Optional, Sequence

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from event_reconciler import EventReconciler
from strace_runner import StraceRunner, build_user_args, trace_to_file
from thread_metadata import get_process_threads_metadata
from trace_events import TraceEvent, TraceEventCollection
from tracer_config import TracerConfig, load_config

PERFETTO_UI = "https://ui.perfetto.dev/"


class StraceToPerfettoPipeline:
    """Orchestrates the pipeline from strace capture to trace-event JSON."""

    def __init__(self, config: TracerConfig, command: Sequence[str] = (),
                 input_file: Optional[Path] = None, pid: Optional[int] = None):
        """
        Initialize pipeline orchestrator.

        Args:
            config: Effective tracer configuration
            command: Command to trace, or a single pid to attach to
            input_file: Existing strace capture to convert instead of tracing
            pid: Attached pid for an existing capture
        """
        self.config = config
        self.input_file = Path(input_file) if input_file else None
        self.output = Path(config.output)

        if self.input_file:
            self.user_args: List[str] = []
            self.pid = pid
        else:
            self.user_args, self.pid = build_user_args(command, config.syscalls)

        self.metadata: List[TraceEvent] = []
        self.collection: Optional[TraceEventCollection] = None
        self.reconciler: Optional[EventReconciler] = None
        self.pipeline_stats = {
            'start_time': None,
            'end_time': None,
            'stages': {}
        }

        logging.info("=" * 70)
        logging.info("Pipeline Orchestrator Initialized")
        logging.info("=" * 70)
        if self.input_file:
            logging.info(f"Trace input: {self.input_file}")
        else:
            logging.info(f"strace arguments: {' '.join(self.user_args)}")
        logging.info(f"Output file: {self.output}")

    def run(self) -> Path:
        """Execute the complete pipeline."""
        self.pipeline_stats['start_time'] = datetime.now()

        if self.input_file:
            self._convert(self.input_file)
        else:
            with trace_to_file() as trace_file:
                self._stage_capture(trace_file)
                self._convert(trace_file)

        self._finalize_pipeline()
        return self.output

    def _convert(self, trace_file: Path):
        self._stage_thread_metadata()
        self._stage_reconcile(trace_file)
        self._stage_save()

    def _begin_stage(self, stage_name: str) -> datetime:
        logging.info("=" * 70)
        logging.info(stage_name)
        logging.info("=" * 70)
        return datetime.now()

    def _end_stage(self, key: str, stage_start: datetime, **stats):
        stage_duration = (datetime.now() - stage_start).total_seconds()
        self.pipeline_stats['stages'][key] = {'duration_seconds': stage_duration, **stats}
        logging.info(f"Stage completed in {stage_duration:.2f} seconds")

    def _stage_capture(self, trace_file: Path):
        """Stage 1: Run strace."""
        stage_start = self._begin_stage("STAGE 1: TRACE CAPTURE")

        runner = StraceRunner(
            default_args=self.config.strace_args,
            user_args=self.user_args,
            timeout=self.config.timeout,
            executable=self.config.strace_executable
        )
        returncode = runner.run(trace_file)

        logging.info(f"Trace size: {trace_file.stat().st_size / 1024:.1f} KB")
        self._end_stage('capture', stage_start, return_code=returncode)

    def _stage_thread_metadata(self):
        """Stage 2: Collect thread names for an attached process."""
        stage_start = self._begin_stage("STAGE 2: THREAD METADATA")

        if self.pid is None:
            logging.info("No attached pid, skipping thread names")
        else:
            try:
                self.metadata = get_process_threads_metadata(self.pid)
            except OSError as e:
                logging.warning(f"Could not read thread names for pid {self.pid}: {e}")

        self._end_stage('metadata', stage_start, threads=len(self.metadata))

    def _stage_reconcile(self, trace_file: Path):
        """Stage 3: Turn strace lines into events."""
        stage_start = self._begin_stage("STAGE 3: RECONCILIATION")

        self.reconciler = EventReconciler(pid=self.pid)
        with open(trace_file, 'r', encoding='utf-8', errors='replace') as f:
            self.collection = self.reconciler.reconcile(f, self.metadata)

        stats = self.reconciler.get_statistics()
        parser_stats = stats.get('parser', {})
        logging.info("Reconciliation Results:")
        logging.info(f"  Lines processed: {parser_stats.get('total_lines', 0):,}")
        logging.info(f"  Complete events: {stats['complete_events']:,}")
        logging.info(f"  Instant events: {stats['instant_events']:,}")
        logging.info(f"  Unmatched resumes: {stats['unmatched_resumes']:,}")

        self._end_stage('reconcile', stage_start, events=len(self.collection))

    def _stage_save(self):
        """Stage 4: Write the trace-event document."""
        stage_start = self._begin_stage("STAGE 4: SAVE")
        self.collection.save(self.output)
        self._end_stage('save', stage_start)

    def _finalize_pipeline(self):
        self.pipeline_stats['end_time'] = datetime.now()
        total_duration = (self.pipeline_stats['end_time'] -
                          self.pipeline_stats['start_time']).total_seconds()

        logging.info("=" * 70)
        logging.info("PIPELINE COMPLETE")
        logging.info("=" * 70)
        logging.info(f"Total execution time: {total_duration:.2f} seconds")
        for stage, stats in self.pipeline_stats['stages'].items():
            duration = stats['duration_seconds']
            percentage = (duration / total_duration * 100) if total_duration > 0 else 0
            logging.info(f"  {stage.upper()}: {duration:.2f}s ({percentage:.1f}%)")


LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def add_log_file(log_file: str) -> logging.FileHandler:
    """Mirror log output to a file once the config naming it is loaded."""
    handler = logging.FileHandler(log_file, mode='w')
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.getLogger().addHandler(handler)
    return handler


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='strace to Perfetto - syscall timeline converter',
        usage='%(prog)s [OPTIONS] command',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Trace a command
  python3 main.py -o out.json ls -la

  # Attach to a running process for 30 seconds
  python3 main.py -t 30 1234

  # Only trace file syscalls
  python3 main.py -e trace=%file cat /etc/hostname

  # Convert an existing `strace -f -T -ttt` capture
  python3 main.py --input trace.txt -o out.json
        """
    )

    parser.add_argument('-e', dest='syscalls', help='only trace specified syscalls')
    parser.add_argument('-o', dest='output', help='json output file (default: /data/stracefile.json)')
    parser.add_argument('-t', dest='timeout', type=float, help='strace timeout in seconds (default: 10)')
    parser.add_argument('--config', type=Path, help='JSON config file (default: ./strace_perfetto.json)')
    parser.add_argument('--input', type=Path, help='convert an existing strace capture instead of tracing')
    parser.add_argument('--pid', type=int, help='attached pid of an existing capture (with --input)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('command', nargs=argparse.REMAINDER, help='command to trace, or a pid to attach to')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not args.command and not args.input:
        parser.print_help(sys.stderr)
        return 1

    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
    except ValueError as e:
        logging.error(f"{e}")
        return 1

    if config.log_file:
        add_log_file(config.log_file)

    if args.syscalls:
        config.syscalls = args.syscalls
    if args.output:
        config.output = args.output
    if args.timeout is not None:
        config.timeout = args.timeout

    if args.input and not args.input.exists():
        logging.error(f"Trace input not found: {args.input}")
        return 1

    try:
        pipeline = StraceToPerfettoPipeline(
            config=config,
            command=args.command,
            input_file=args.input,
            pid=args.pid
        )
        output = pipeline.run()
    except KeyboardInterrupt:
        logging.warning("Pipeline interrupted by user")
        return 1
    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        return 1

    print(f"[+] Trace file saved to: {output}")
    print(f"[+] Analyze results: {PERFETTO_UI}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
