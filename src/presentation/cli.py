"""CLI interface for the assembly processing pipeline."""
import sys
import json
import time
import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from domain.models import ObjectRef, ProcessingJob
from domain.exceptions import AssemblyNotFoundError, DomainException
from infrastructure.config import ConfigLoader, PipelineSettings
from infrastructure.status import InMemoryStatusStore
from infrastructure.storage import LocalObjectStorage
from infrastructure.media import ToolRunner
from application.factories import PipelineFactory
from application.registry import TemplateRegistry
from shared.logging import get_logger, set_level

LOCAL_BUCKET = "local"


def local_run(
    template_id: str,
    files: List[Path],
    out_dir: Path,
    branch: str = "local",
    tools: Optional[ToolRunner] = None
) -> Dict[str, Any]:
    """
    Run a template against local files.

    Inputs are copied into a filesystem-backed bucket under ``out_dir``;
    results land in the same tree. Status is kept in memory.

    Returns:
        Final status record of the assembly
    """
    storage = LocalObjectStorage(out_dir)
    assembly_id = f"local-{int(time.time() * 1000)}"

    refs = []
    for path in files:
        ref = ObjectRef(LOCAL_BUCKET, f"uploads/{branch}/{assembly_id}/{path.name}")
        storage.put(ref, path.read_bytes())
        refs.append(ref)

    settings = PipelineSettings(
        branch=branch,
        allowed_buckets=[LOCAL_BUCKET],
        output_bucket=LOCAL_BUCKET,
        temp_dir=out_dir / ".tmp"
    )
    status = InMemoryStatusStore()
    factory = PipelineFactory(settings, storage=storage, status=status, tools=tools)

    job = ProcessingJob(
        assembly_id=assembly_id,
        upload_id=assembly_id,
        template_id=template_id,
        objects=refs,
        branch=branch
    )
    result = factory.create_processor().process_job(job)
    get_logger(__name__).info(f"Local run {assembly_id}: {result.outcome.value}")
    try:
        return status.get(assembly_id)
    except AssemblyNotFoundError:
        return {"assembly_id": assembly_id, "outcome": result.outcome.value, "message": result.error}


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Assembly processing pipeline")
    parser.add_argument('--config', type=Path, help='Config YAML file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose')
    sub = parser.add_subparsers(dest='command', required=True)

    handle_p = sub.add_parser('handle', help='Run the processing handler on an event JSON file')
    handle_p.add_argument('event', type=Path)

    status_p = sub.add_parser('status', help='Show the status record of an assembly')
    status_p.add_argument('assembly_id')
    status_p.add_argument('--user', help='Only show if owned by this user id')
    status_p.add_argument('--trigger-webhook', action='store_true', help='Re-send the template webhook')

    run_p = sub.add_parser('local-run', help='Run a template on local files')
    run_p.add_argument('--template', '-t', required=True, help='Template id')
    run_p.add_argument('--out', '-o', type=Path, default=Path('.transflow-outputs'), help='Output directory')
    run_p.add_argument('--branch', default='local')
    run_p.add_argument('files', nargs='+', type=Path)

    sub.add_parser('templates', help='List registered template ids')

    args = parser.parse_args(argv)

    if args.verbose:
        set_level(logging.DEBUG)
    logger = get_logger(__name__)

    try:
        if args.command == 'templates':
            for template_id in TemplateRegistry.default().ids():
                print(template_id)
            return 0

        if args.command == 'local-run':
            missing = [str(f) for f in args.files if not f.is_file()]
            if missing:
                logger.error(f"Input file(s) not found: {', '.join(missing)}")
                return 2
            record = local_run(args.template, args.files, args.out, branch=args.branch)
            _print_json(record)
            return 0 if record.get("ok") else 1

        factory = PipelineFactory(ConfigLoader(config_path=args.config).load())

        if args.command == 'handle':
            event = json.loads(args.event.read_text(encoding='utf-8'))
            _print_json(factory.create_runner().handle(event))
            return 0

        if args.command == 'status':
            code, body = factory.create_status_service().lookup(
                args.assembly_id,
                user_id=args.user,
                trigger_webhook=args.trigger_webhook
            )
            _print_json(body)
            return 0 if code == 200 else 1

    except DomainException as e:
        logger.error(f"Pipeline error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130

    return 1


if __name__ == '__main__':
    sys.exit(main())
