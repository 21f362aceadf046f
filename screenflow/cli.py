"""
Command line: capture, test, history and section editing
"""

import sys
import json
import asyncio
import argparse
from .capture import CaptureService, SectionEditor, SessionState
from .comparison import OfflineComparer
from .config import BrowserConfig, CaptureConfig, ReplayConfig, ScreenflowSettings
from .error_handler import ScreenflowError
from .monitoring import LogManager
from .regression import ConsoleCheckpoint, OverlayCheckpoint, RegressionOrchestrator
from .storage import SectionStorage

CAPTURE_HELP = """Commands:
  c <name> [type] [parent]   capture the current screen (type: page, modal, form, list)
  cancel                     drop everything recorded since the last capture
  status                     show session status
  stop                       end the session"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Screen capture, replay and regression testing')
    parser.add_argument('--data-dir', default=None, help='Storage root (default: $SCREENFLOW_DATA_DIR)')
    parser.add_argument('--log-level', default=None, help='Log level (default: $SCREENFLOW_LOG_LEVEL)')
    parser.add_argument('--debug', action='store_true', default=None, help='Verbose logging')
    sub = parser.add_subparsers(dest='command', required=True)

    capture = sub.add_parser('capture', help='Record a new section interactively')
    capture.add_argument('project')
    capture.add_argument('url')
    capture.add_argument('--device', default='desktop', help='desktop, tablet, mobile or custom')
    capture.add_argument('--width', type=int)
    capture.add_argument('--height', type=int)
    capture.add_argument('--no-auth', action='store_true', help='Do not inject stored auth')

    test = sub.add_parser('test', help='Run a regression test for a section')
    test.add_argument('project')
    test.add_argument('section')
    test.add_argument('--device', default='original', help='original, desktop, tablet or mobile')
    test.add_argument('--headless', action='store_true')
    test.add_argument('--strict', action='store_true', help='Refuse flows with branches')
    test.add_argument('--console', action='store_true', help='Ask at checkpoints on the terminal')
    test.add_argument('--checkpoint-timeout', type=float, help='Seconds before a checkpoint skips')
    test.add_argument('--keep-open', action='store_true', help='Leave the browser open afterwards')

    history = sub.add_parser('history', help='List past test runs')
    history.add_argument('project')
    history.add_argument('--section')

    delete_run = sub.add_parser('delete-run', help='Delete a test run')
    delete_run.add_argument('project')
    delete_run.add_argument('run_id')

    reparent = sub.add_parser('reparent', help='Move a screen under another screen')
    reparent.add_argument('project')
    reparent.add_argument('section')
    reparent.add_argument('screen')
    reparent.add_argument('new_parent')

    delete_screen = sub.add_parser('delete-screen', help='Delete a screen and everything below it')
    delete_screen.add_argument('project')
    delete_screen.add_argument('section')
    delete_screen.add_argument('screen')

    compare = sub.add_parser('compare', help='Compare two stored screens without a browser')
    compare.add_argument('project')
    compare.add_argument('section_a')
    compare.add_argument('screen_a')
    compare.add_argument('section_b')
    compare.add_argument('screen_b', nargs='?')
    compare.add_argument('--from-html', action='store_true', help='Rebuild DOM trees from screen.html')
    compare.add_argument('--json', action='store_true', help='Print the full comparison as JSON')
    return parser


async def read_line(prompt: str) -> str:
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, input, prompt)


async def run_capture(args, storage: SectionStorage):
    service = CaptureService(storage, BrowserConfig(), CaptureConfig(inject_auth=not args.no_auth))
    session = await service.start_session(args.project, args.url, args.device, args.width, args.height)
    print(f"📸 Capturing {args.project}/{session.section_id} from {args.url}")
    print(CAPTURE_HELP)

    while service.state == SessionState.RUNNING:
        try:
            line = (await read_line('> ')).strip()
        except EOFError:
            break
        if service.state != SessionState.RUNNING:
            break
        if not line:
            continue

        command, *rest = line.split()
        try:
            if command in ('c', 'capture'):
                if not rest:
                    print("Usage: c <name> [type] [parent]")
                    continue
                name = rest[0]
                screen_type = rest[1] if len(rest) > 1 else 'page'
                parent = rest[2] if len(rest) > 2 else None
                result = await service.capture_screen(name, screen_type, parent)
                print(f"✅ {result['nestedPath']} ({result['actions']} actions, {result['apis']} APIs)")
            elif command == 'cancel':
                service.cancel_capture()
                print("Pending actions and APIs cleared")
            elif command == 'status':
                print(json.dumps(service.status(), indent=2, default=str))
            elif command in ('stop', 'q', 'quit'):
                break
            else:
                print(CAPTURE_HELP)
        except ScreenflowError as e:
            print(f"❌ {e}")

    summary = await service.stop_session()
    if summary:
        print(f"🛑 Session stopped: {summary['screens']} screens in {args.project}/{summary['sectionId']}")


async def run_test(args, storage: SectionStorage, log_manager: LogManager) -> int:
    replay_config = ReplayConfig(
        device_profile=args.device,
        checkpoint_timeout=args.checkpoint_timeout,
        keep_browser_open=args.keep_open,
    )

    def checkpoint_factory(driver):
        if args.console:
            return ConsoleCheckpoint(timeout=args.checkpoint_timeout)
        return OverlayCheckpoint(driver, timeout=args.checkpoint_timeout)

    orchestrator = RegressionOrchestrator(
        storage,
        replay_config=replay_config,
        browser_config=BrowserConfig(headless=args.headless),
        checkpoint_factory=checkpoint_factory,
        log_manager=log_manager,
    )
    report = await orchestrator.run(args.project, args.section, strict=args.strict)
    print()
    for line in report.summary_lines():
        print(line)
    if args.keep_open:
        await read_line("Press Enter to close the browser ")
        await orchestrator.close()
    return 0 if report.overall_status != 'FAILED' else 2


async def run_history(args, storage: SectionStorage):
    runs = await storage.list_test_runs(args.project, args.section)
    if not runs:
        print("No test runs")
        return
    for run in runs:
        print(f"{run['testRunId']}  {run['overallStatus'] or '?':8} section={run['sectionId']} "
              f"{run['passed']}/{run['total']} passed, {run['failed']} failed, {run['warnings']} warnings "
              f"({(run['duration'] or 0) / 1000:.1f}s)")


async def run_compare(args, storage: SectionStorage):
    comparer = OfflineComparer(storage)
    comparison = await comparer.compare_screens(args.project, args.section_a, args.screen_a,
                                                args.section_b, args.screen_b, args.from_html)
    if args.json:
        print(json.dumps(comparison.to_dict(), indent=2, default=str))
        return
    print(f"Similarity: {comparison.overall_score}% (DOM {comparison.ui.similarity_score}%, "
          f"API {comparison.api.similarity_score}%)")
    print(f"DOM: {comparison.ui.summary}")
    print(f"API: {comparison.api.summary}")


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = ScreenflowSettings.from_env(data_dir=args.data_dir, log_level=args.log_level, debug=args.debug)
    log_manager = LogManager(settings.log_dir, settings.log_level)
    storage = SectionStorage(settings.data_dir)

    if args.command == 'capture':
        await run_capture(args, storage)
    elif args.command == 'test':
        return await run_test(args, storage, log_manager)
    elif args.command == 'history':
        await run_history(args, storage)
    elif args.command == 'delete-run':
        deleted = await storage.delete_test_run(args.project, args.run_id)
        print("🗑️ Deleted" if deleted else "Test run not found")
    elif args.command == 'reparent':
        result = await SectionEditor(storage).reparent_screen(args.project, args.section, args.screen,
                                                              args.new_parent)
        for moved in result['moved']:
            print(f"  {moved['from']} -> {moved['to']}")
    elif args.command == 'delete-screen':
        removed = await SectionEditor(storage).delete_screen(args.project, args.section, args.screen)
        print(f"🗑️ Removed {', '.join(removed)}")
    elif args.command == 'compare':
        await run_compare(args, storage)
    return 0


def run():
    print("🌿 Screenflow")
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n🛑 Stopped by user")
    except ScreenflowError as e:
        print(f"❌ {e}")
        sys.exit(1)
