#!/usr/bin/env python3
"""
Slide Recorder CLI

Usage:
    # Record once in the foreground and upload to MinIO
    python -m src.recorder.cli record \
        --url "https://docs.google.com/presentation/d/ID/present" \
        --timings 5,10,15

    # Keep the MP4 locally instead of uploading
    python -m src.recorder.cli record --url "..." --timings 5,10,15 --no-upload

    # Run the HTTP API
    python -m src.recorder.cli serve --port 3003
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from src.recorder.config import RecorderConfig, Resolution
from src.recorder.coordinator import RecordingCoordinator
from src.recorder.errors import InvalidRequestError
from src.recorder.models import JobState, RecordingRequest
from src.recorder.upload import UploadPipeline

logger = logging.getLogger(__name__)


def parse_timings(value: str) -> tuple[float, ...]:
    """'5, 10,15.5' -> (5.0, 10.0, 15.5)"""
    try:
        return tuple(float(part) for part in value.split(",") if part.strip())
    except ValueError:
        raise click.BadParameter(f"Timings must be comma-separated numbers, got '{value}'")


async def run_recording(
    config: RecorderConfig,
    request: RecordingRequest,
    upload: bool = True,
) -> dict:
    """Run one job to completion and return its final status"""
    uploader = None
    if upload:
        uploader = UploadPipeline(config.storage)
        await uploader.ensure_bucket()

    coordinator = RecordingCoordinator(config, uploader=uploader)
    admission = coordinator.submit(request)
    logger.info(
        f"Recording {admission.job_id} started "
        f"(estimated {admission.estimated_duration_seconds:g}s)"
    )
    try:
        snapshot = await coordinator.wait(admission.job_id)
    finally:
        await coordinator.shutdown()
    return snapshot.to_dict()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging (includes encoder progress)")
def cli(verbose: bool):
    """Record presentations on a virtual display."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@cli.command()
@click.option("--url", "source_url", required=True, help="Public presentation URL")
@click.option("--timings", required=True, help="Comma-separated seconds at which to advance, e.g. 5,10,15")
@click.option("--resolution", default=None, help="Display/video size, e.g. 1920x1080")
@click.option("--output-dir", default=None, help="Directory for the temporary recording")
@click.option("--upload/--no-upload", default=True, help="Upload the result to MinIO")
def record(source_url: str, timings: str, resolution: str, output_dir: str, upload: bool):
    """Record one presentation and print the final job status as JSON."""
    config = RecorderConfig.from_env()
    if resolution:
        try:
            config.resolution = Resolution.parse(resolution)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--resolution")
    if output_dir:
        config.temp_dir = Path(output_dir)
        config.temp_dir.mkdir(parents=True, exist_ok=True)

    try:
        request = RecordingRequest(source_url=source_url, timings=parse_timings(timings))
    except InvalidRequestError as e:
        raise click.BadParameter(str(e), param_hint="--timings")

    result = asyncio.run(run_recording(config, request, upload=upload))
    click.echo(json.dumps(result, indent=2, ensure_ascii=False))
    if result["status"] != JobState.COMPLETED.value:
        sys.exit(1)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=3003, type=int, help="Bind port")
def serve(host: str, port: int):
    """Run the recording HTTP API."""
    import uvicorn

    from src.api.recording_api import create_app

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    cli()
