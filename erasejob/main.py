"""Main entry point for the erase workflow tool."""

import argparse
import logging
import sys
import threading
from typing import List, Optional

from .backends import ImageFileBackend, create_backend
from .collect import DeviceCollector, StaticDeviceSource
from .configuration import METHOD_INFO, estimate_duration, preset_passes, validate
from .controller import JobController
from .errors import BackendError
from .models import EraseMethod, EraseScope, EventKind, JobEvent, JobState, StorageType
from .notifications import CallbackSink, FanoutSink, LoggingSink
from .progress import format_elapsed
from .report import CertificateStore
from .settings import WorkflowSettings
from .state import PHASES, StateManager


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def show_status(settings: WorkflowSettings) -> None:
    """Show current status of all phases."""
    print("📊 Erase Workflow - Status")
    print("=" * 30)

    state_manager = StateManager(settings.state_file, settings.report_dir)
    for phase in PHASES:
        status = state_manager.get_phase_status(phase)
        status_icon = "✅" if status == "completed" else "⏳" if status == "running" else "❌" if status == "failed" else "⭕"
        print(f"{status_icon} {phase.capitalize()}: {status}")

    history = state_manager.get_history()
    if history:
        print(f"\n🗂  Jobs recorded: {len(history)}")
        for entry in history[-5:]:
            cert = entry.get("certificate_id") or "no certificate"
            print(f"   - {entry['device']} {entry['method']} x{entry['passes']}: "
                  f"{entry['state']} at {entry['progress']}% ({cert})")


def show_devices(args) -> None:
    source = StaticDeviceSource() if args.demo else DeviceCollector()
    devices = source.list_devices()
    if not devices:
        print("❌ No devices found.")
        return
    print(f"📱 Devices found: {len(devices)}")
    for device in devices:
        print(f"   - {device.model} ({device.path}) - {device.capacity_display} {device.media_type.value.upper()} "
              f"serial {device.serial}")


def show_certificates(settings: WorkflowSettings) -> None:
    store = CertificateStore(settings.report_dir)
    records = store.list_certificates()
    if not records:
        print("No certificates issued yet.")
        return
    for record in records:
        print(f"📄 {record.id}  {record.device_snapshot.path}  {record.method.value} x{record.passes}  "
              f"completed {record.completed_at:%Y-%m-%d %H:%M:%S}")


def show_help() -> None:
    """Show help information."""
    print("Erase Workflow Tool - Help")
    print("=" * 26)
    print()
    print("Available commands:")
    print("  erasejob status        - Show workflow phases and recorded jobs")
    print("  erasejob devices       - List erasable devices")
    print("  erasejob workflow      - Configure, confirm and run an erase job")
    print("  erasejob certificates  - List issued certificates")
    print()
    print("Methods:")
    for method, info in METHOD_INFO.items():
        print(f"  {method.value:<9} {info['label']}: {info['description']}")
    print()
    print("Controls while erasing:")
    print("  Ctrl+C pauses the job; you can then resume, check what is still")
    print("  recoverable, or stop (stopping asks for a second confirmation).")


def _select_device(args, settings: WorkflowSettings):
    if settings.backend == "image" or args.image:
        path = args.image or settings.image_path
        return ImageFileBackend(path).describe()
    source = StaticDeviceSource() if args.demo else DeviceCollector()
    devices = source.list_devices()
    if not devices:
        raise ValueError("No devices found. Use --demo for the simulated device.")
    if args.device:
        for device in devices:
            if device.path == args.device:
                return device
        raise ValueError(f"Device {args.device} not found")
    print(f"Auto-selecting first device: {devices[0].model} ({devices[0].path})")
    return devices[0]


def _paused_menu(controller: JobController) -> None:
    """Interactive choices while a job is paused."""
    while controller.state == JobState.PAUSED:
        choice = input("\n[r]esume, [s]top, [c]heck recoverable data: ").strip().lower()
        if choice == "r":
            controller.resume()
        elif choice == "c":
            result = controller.attempt_recovery()
            if result.accepted:
                print(f"🔄 {result.recoverable_percent:.2f}% of the drive has not been overwritten yet "
                      "and may be recoverable.")
            else:
                print(f"❌ {result.reason}")
        elif choice == "s":
            print("⚠️  Stopping now leaves the drive PARTIALLY erased. Some data may still be recoverable.")
            typed = input("Type 'STOP' to confirm: ")
            result = controller.stop(acknowledged=typed == "STOP")
            if not result.accepted:
                print(f"❌ {result.reason}")


def run_workflow(args, settings: WorkflowSettings) -> bool:
    """Run the complete erase workflow."""
    print("🚀 Starting Erase Workflow")
    print("=" * 50)

    state_manager = StateManager(settings.state_file, settings.report_dir)
    state_manager.reset_phases()
    store = CertificateStore(settings.report_dir, settings.business_info)

    # Phase 1: Configure
    try:
        device = _select_device(args, settings)
    except (ValueError, OSError, BackendError) as e:
        print(f"❌ {e}")
        state_manager.update_phase("configure", "failed", {"error": str(e)})
        return False

    passes = args.passes if args.passes is not None else preset_passes(args.method)
    result = validate({
        "storage_type": args.storage_type or device.media_type.value,
        "method": args.method,
        "scope": args.scope,
        "passes": passes,
        "verify": not args.no_verify,
        "secure_delete": not args.no_secure_delete,
    })
    if not result.ok:
        print(f"❌ Invalid configuration: {result.error}")
        state_manager.update_phase("configure", "failed", {"error": str(result.error)})
        return False
    configuration = result.configuration
    state_manager.update_phase("configure", "completed", {
        "device": device.model_dump(), "configuration": configuration.model_dump(mode="json"),
    })

    print(f"Device: {device.model} ({device.path}) - {device.capacity_display}")
    print(f"Method: {METHOD_INFO[configuration.method]['label']}, {configuration.passes} passes, "
          f"scope {configuration.scope.value}")
    print(f"Estimated duration: {estimate_duration(configuration)}")

    done = threading.Event()

    def on_event(event: JobEvent) -> None:
        if event.kind in (EventKind.JOB_COMPLETED, EventKind.JOB_STOPPED, EventKind.JOB_FAILED):
            done.set()

    backend = create_backend(settings, device)
    controller = JobController(
        backend=backend,
        settings=settings,
        sink=FanoutSink(LoggingSink(), CallbackSink(on_event)),
        state_manager=state_manager,
    )

    # Phase 2: Confirm
    controller.request_start(configuration, device)
    print("\n⚠️  WARNING: This will permanently destroy all data on the selected device!")
    typed = "" if args.yes else input("Type 'DELETE' to continue: ")
    confirmed = controller.confirm(typed_text=typed, checkbox_checked=args.yes)
    if not confirmed.accepted:
        print(f"❌ {confirmed.reason}. Operation cancelled by user.")
        controller.cancel()
        state_manager.update_phase("confirm", "failed", {"error": confirmed.reason})
        return False
    state_manager.update_phase("confirm", "completed", {"job_id": confirmed.job.id})

    # Phase 3: Erase
    state_manager.update_phase("erase", "running", {"job_id": confirmed.job.id})
    try:
        while not done.is_set():
            try:
                done.wait(1.0)
                job = controller.snapshot()
                print(f"\r{job.progress:6.2f}%  pass {job.current_pass}/{job.total_passes}  "
                      f"{format_elapsed(job.elapsed_seconds)}  {job.status_message:<70}", end="", flush=True)
            except KeyboardInterrupt:
                controller.pause()
                print("\n⏸  Process paused.")
                _paused_menu(controller)
    finally:
        controller.shutdown()
    print()

    job = controller.snapshot()
    summary = {"progress": job.progress, "elapsed_seconds": job.elapsed_seconds,
               "completed_areas": job.completed_areas}
    success = controller.state == JobState.COMPLETED
    if success:
        state_manager.update_phase("erase", "completed", summary)
        # Phase 4: Certificate
        certificate = controller.certificate
        path = store.save(certificate)
        state_manager.update_phase("certificate", "completed", {"certificate_id": certificate.id,
                                                                 "path": str(path)})
        print("✅ Drive erasure complete!")
        print(f"📄 Certificate {certificate.id}: {path}")
    elif controller.state == JobState.STOPPED:
        state_manager.update_phase("erase", "failed", {**summary, "error": "stopped by user"})
        print(f"⚠️  Wipe stopped at {job.progress:.2f}% - drive partially erased, no certificate issued.")
    else:
        state_manager.update_phase("erase", "failed", {**summary, "error": job.error_message})
        print(f"❌ Wipe failed: {job.error_message}")

    controller.acknowledge()
    return success


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="erasejob", description="Secure storage erasure workflow")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show workflow status")
    sub.add_parser("help", help="Show help")
    sub.add_parser("certificates", help="List issued certificates")

    devices = sub.add_parser("devices", help="List devices")
    devices.add_argument("--demo", action="store_true", help="Use the simulated demo device")

    workflow = sub.add_parser("workflow", help="Run an erase job")
    workflow.add_argument("--device", help="Device path (default: first device found)")
    workflow.add_argument("--demo", action="store_true", help="Use the simulated demo device")
    workflow.add_argument("--image", help="Overwrite this disk image file instead of a device")
    workflow.add_argument("--method", default=EraseMethod.SECURE.value, choices=[m.value for m in EraseMethod])
    workflow.add_argument("--scope", default=EraseScope.WHOLE.value, choices=[s.value for s in EraseScope])
    workflow.add_argument("--storage-type", dest="storage_type", choices=[s.value for s in StorageType])
    workflow.add_argument("--passes", type=int, help="Overwrite passes, 1-35 (default: method preset)")
    workflow.add_argument("--no-verify", dest="no_verify", action="store_true")
    workflow.add_argument("--no-secure-delete", dest="no_secure_delete", action="store_true")
    workflow.add_argument("--yes", action="store_true", help="Tick the confirmation box instead of typing DELETE")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = WorkflowSettings.from_env()
    setup_logging(settings.log_level)

    if args.command == "help":
        show_help()
    elif args.command == "devices":
        show_devices(args)
    elif args.command == "certificates":
        show_certificates(settings)
    elif args.command == "workflow":
        try:
            if args.image:
                settings = settings.model_copy(update={"backend": "image", "image_path": args.image})
            return 0 if run_workflow(args, settings) else 1
        except KeyboardInterrupt:
            print("\n❌ Workflow interrupted by user.")
            return 1
    else:
        show_status(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
