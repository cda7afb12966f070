#!/usr/bin/env python3
"""
YouTube Podcast Transcriber
===========================
Transcribes long podcast episodes from YouTube URLs.

Pipeline:
1. Fetch metadata and download audio (yt-dlp)
2. Resample to 16 kHz mono (ffmpeg)
3. Split into overlapping chunks that fit the size/duration limits (ffmpeg)
4. Upload chunks to S3-compatible storage (boto3)
5. Transcribe each chunk (Groq Whisper)
6. Merge chunk transcripts, removing words repeated across boundaries
7. Write metadata and transcript records

Usage:
    yt-transcript <command> [options]

Examples:
    # Transcribe a new episode
    yt-transcript add "https://www.youtube.com/watch?v=..."

    # Refresh view counts etc. for every tracked episode
    yt-transcript update-metadata --all

    # Transcribe a tracked episode again
    yt-transcript reprocess VIDEO_ID

    # Produce transcripts that are missing
    yt-transcript rebuild

    # Check every record against its schema
    yt-transcript validate

    # Third-guest posts from two models
    yt-transcript guest generate --all --models claude-sonnet-4-20250514,openai/gpt-4.1
"""

import argparse
import sys

from yt_transcript import __version__
from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, SECTION_SEPARATOR, check_dependencies,
)

COMMANDS_NEEDING_TOOLS = {"add", "reprocess", "rebuild", "update-metadata"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yt-transcript",
        description="Transcribe long YouTube podcast episodes with Groq Whisper",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show detailed command output")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Parallel chunk uploads/transcriptions per video (default: 3)")
    parser.add_argument("--batch-concurrency", type=int, default=None,
                        help="Videos processed in parallel with --all (default: 1)")
    parser.add_argument("--keep-audio", action="store_true",
                        help="Keep downloaded, preprocessed, and chunk audio after success")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- add ---
    add_parser = subparsers.add_parser("add", help="Transcribe a new video")
    add_parser.add_argument("url", help="YouTube URL or video id")
    add_parser.add_argument("--skip-if-exists", action="store_true",
                            help="Do nothing if the video already has a metadata record")

    # --- update-metadata ---
    update_parser = subparsers.add_parser(
        "update-metadata", help="Refresh metadata records from YouTube")
    update_parser.add_argument("video_id", nargs="?", help="Video id to refresh")
    update_parser.add_argument("--all", action="store_true", help="Refresh every tracked video")

    # --- reprocess ---
    reprocess_parser = subparsers.add_parser(
        "reprocess", help="Transcribe tracked videos again")
    reprocess_parser.add_argument("video_id", nargs="?", help="Video id to reprocess")
    reprocess_parser.add_argument("--all", action="store_true", help="Reprocess every tracked video")

    # --- rebuild ---
    rebuild_parser = subparsers.add_parser(
        "rebuild", help="Transcribe tracked videos that have no transcript")
    rebuild_parser.add_argument("--video-id", default=None, help="Only this video")
    rebuild_parser.add_argument("--force", action="store_true",
                                help="Transcribe even if a transcript exists")

    # --- validate ---
    validate_parser = subparsers.add_parser("validate", help="Validate stored records")
    validate_parser.add_argument("--kind", choices=["metadata", "transcripts", "all"],
                                 default="all", help="Which records to check (default: all)")

    # --- guest ---
    guest_parser = subparsers.add_parser("guest", help='LLM "third guest" posts')
    guest_subparsers = guest_parser.add_subparsers(dest="guest_command", required=True)
    generate_parser = guest_subparsers.add_parser("generate", help="Generate guest posts")
    generate_parser.add_argument("video_id", nargs="?", help="Video id")
    generate_parser.add_argument("--all", action="store_true",
                                 help="Every transcribed video without a post")
    generate_parser.add_argument("--models", default=None,
                                 help="Comma-separated model ids (default: LLM_MODEL)")
    generate_parser.add_argument("--force", action="store_true",
                                 help="Regenerate posts that already exist")
    list_parser = guest_subparsers.add_parser("list", help="List videos and their posts")
    list_parser.add_argument("--model", default=None, help="Model id (default: LLM_MODEL)")
    return parser


def _config_from_args(args) -> PipelineConfig:
    overrides = {"verbose": args.verbose}
    if args.concurrency is not None:
        overrides["chunk_concurrency"] = args.concurrency
    if args.batch_concurrency is not None:
        overrides["batch_concurrency"] = args.batch_concurrency
    if args.keep_audio:
        overrides["keep_audio_cache"] = True
    return PipelineConfig.from_env(**overrides)


def _build_pipeline(config: PipelineConfig):
    from yt_transcript.pipeline import TranscriptPipeline
    from yt_transcript.storage import BucketStorage
    from yt_transcript.transcription import TranscriptionClient
    return TranscriptPipeline(config, BucketStorage(config), TranscriptionClient(config))


def _require_target(args, parser) -> None:
    if not args.all and not args.video_id:
        parser.error(f"{args.command}: give a video id or --all")
    if args.all and args.video_id:
        parser.error(f"{args.command}: give a video id or --all, not both")


def _finish_batch(report) -> int:
    for outcome in report.failures:
        print(f"  FAILED {outcome.job_id} [{outcome.stage}]: {outcome.message}")
    return 0 if report.ok else 1


def _cmd_add(args, config) -> int:
    from yt_transcript.download import extract_video_id, youtube_url
    video_id = extract_video_id(args.url)
    url = youtube_url(video_id) if video_id and video_id == args.url.strip() else args.url
    result = _build_pipeline(config).process_video(url, skip_if_exists=args.skip_if_exists)
    if not result.skipped:
        print(f"Transcript: {result.transcript_path}")
    return 0


def _cmd_update_metadata(args, config) -> int:
    from yt_transcript import records
    from yt_transcript.batch import run_batch
    pipeline = _build_pipeline(config)
    if not args.all:
        pipeline.update_metadata(args.video_id)
        return 0
    video_ids = records.list_video_ids(config)
    print(f"Updating metadata for {len(video_ids)} video(s)")
    report = run_batch(video_ids, pipeline.update_metadata, config.batch_concurrency)
    return _finish_batch(report)


def _cmd_reprocess(args, config) -> int:
    from yt_transcript import records
    from yt_transcript.batch import run_batch
    pipeline = _build_pipeline(config)
    if not args.all:
        pipeline.reprocess(args.video_id)
        return 0
    video_ids = records.list_video_ids(config)
    print(f"Reprocessing {len(video_ids)} video(s)")
    report = run_batch(video_ids, pipeline.reprocess, config.batch_concurrency)
    return _finish_batch(report)


def _cmd_rebuild(args, config) -> int:
    from yt_transcript import records
    from yt_transcript.batch import run_batch
    pipeline = _build_pipeline(config)
    video_ids = [args.video_id] if args.video_id else records.list_video_ids(config)
    print(f"Rebuilding transcripts for {len(video_ids)} video(s)")
    report = run_batch(video_ids, lambda vid: pipeline.rebuild(vid, force=args.force),
                       config.batch_concurrency)
    return _finish_batch(report)


def _cmd_validate(args, config) -> int:
    from yt_transcript import records
    checks = []
    if args.kind in ("metadata", "all"):
        checks.append(("metadata", config.podcasts_metadata_dir, records.PodcastMetadata))
    if args.kind in ("transcripts", "all"):
        checks.append(("transcripts", config.transcripts_dir, records.TranscriptRecord))
    total_invalid = 0
    for label, directory, model in checks:
        print()
        print(f"[validate] {label} in {directory}")
        valid, invalid = records.validate_directory(directory, model)
        for path, reason in invalid:
            print(f"  INVALID {path.name}: {reason}")
        print(f"  {len(valid)} valid, {len(invalid)} invalid")
        total_invalid += len(invalid)
    return 1 if total_invalid else 0


def _cmd_guest(args, config) -> int:
    from yt_transcript import records
    from yt_transcript.batch import run_batch
    from yt_transcript.guest import generate_guest_post, list_guest_posts

    if args.guest_command == "list":
        model_id = args.model or config.llm_model
        rows = list_guest_posts(config, model_id)
        for video_id, title, exists in rows:
            print(f"  {'[x]' if exists else '[ ]'} {video_id}  {title}")
        print(f"{sum(1 for r in rows if r[2])}/{len(rows)} with a post for {model_id}")
        return 0

    if not args.all and not args.video_id:
        print("Error: give a video id or --all")
        return 1
    raw_models = args.models or config.llm_model
    models = list(dict.fromkeys(m.strip() for m in raw_models.split(",") if m.strip()))
    if args.all:
        video_ids = [v for v in records.list_video_ids(config)
                     if records.transcript_exists(v, config)]
    else:
        video_ids = [args.video_id]
    jobs = [(video_id, model_id) for video_id in video_ids for model_id in models]
    skip = not args.force
    report = run_batch(
        jobs,
        lambda job: generate_guest_post(job[0], job[1], config, skip_if_exists=skip),
        config.batch_concurrency,
        job_id=lambda job: f"{job[0]} {job[1]}",
    )
    return _finish_batch(report)


COMMANDS = {
    "add": _cmd_add,
    "update-metadata": _cmd_update_metadata,
    "reprocess": _cmd_reprocess,
    "rebuild": _cmd_rebuild,
    "validate": _cmd_validate,
    "guest": _cmd_guest,
}


def main(argv=None):
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command in ("update-metadata", "reprocess"):
        _require_target(args, parser)

    try:
        config = _config_from_args(args)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}")
        sys.exit(1)

    if args.command in COMMANDS_NEEDING_TOOLS:
        deps = check_dependencies()
        missing = [tool for tool, ok in deps.items() if not ok]
        if missing:
            print("Missing dependencies:")
            for tool in missing:
                print(f"  - {tool}")
            sys.exit(1)

    try:
        exit_code = COMMANDS[args.command](args, config)
    except Exception as e:
        print()
        print(f"Error: {e}")
        if config.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)
    print(SECTION_SEPARATOR)
    print("COMPLETE!")
    print(SECTION_SEPARATOR)


if __name__ == "__main__":
    main()
