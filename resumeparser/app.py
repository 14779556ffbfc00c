import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import requests

from . import __version__
from .candidates import candidates_from_search_response
from .client import ResumeApiClient, describe_retrieval_error, resume_from_api
from .config import Settings, bootstrap_groups, load_settings
from .env import load_env
from .errors import GroupInUseError, NoFilesSelectedError, RetrievalError, TransportError, ValidationError
from .logger import get_logger
from .models import CandidateResult, FileDescriptor, ResumeStatus
from .normalize import content_type_for
from .ranking import rank_candidates
from .search import SearchEngine
from .store import RecordStore
from .upload import UploadOrchestrator
from .validation import validate_files

logger = get_logger()


def describe_file(path: Path) -> FileDescriptor:
    return FileDescriptor(
        name=path.name,
        size=path.stat().st_size,
        content_type=content_type_for(path),
        path=str(path),
    )


def _existing_files(paths: List[str]) -> List[FileDescriptor]:
    files = []
    for p in paths:
        path = Path(p)
        if not path.is_file():
            raise SystemExit(f"File not found: {path}")
        files.append(describe_file(path))
    return files


def _parse_datetime(value: Any):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def candidate_from_dict(data: Dict[str, Any]) -> CandidateResult:
    known = CandidateResult.__dataclass_fields__
    values = {k: v for k, v in data.items() if k in known}
    for k in ("emails", "phones", "college", "highlights"):
        if k in values:
            values[k] = tuple(values[k] or ())
    values["id"] = str(values.get("id", ""))
    values.setdefault("name", "")
    return CandidateResult(**values)


def _load_json(path_str: str) -> Any:
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _print_candidates(candidates: List[CandidateResult]):
    if not candidates:
        print("No candidates.")
        return
    for rank, c in enumerate(candidates, start=1):
        score = c.average_score or 0
        print(f"{rank:>3}. {c.name or '(unnamed)'}  score={score:.2f}")
        print(
            f"     clarity={c.clarity_score or 0} experience={c.experience_score or 0} "
            f"reputation={c.reputation_score or 0} loyalty={c.loyalty_score or 0}"
        )
        if c.emails:
            print(f"     email: {', '.join(c.emails)}")
        if c.group:
            print(f"     group: {c.group}")


def cmd_validate(args: argparse.Namespace, settings: Settings) -> None:
    files = _existing_files(args.files)
    verdicts = validate_files(files, max_size=settings.max_file_size, allowed_types=settings.allowed_types)
    invalid = False
    for v in verdicts:
        if v.accepted:
            print(f"[ok] {v.file.name}")
            continue
        invalid = True
        print(f"[rejected] {v.file.name}")
        for violation in v.violations:
            print(f" - {violation}")
    if invalid:
        raise SystemExit(2)


def cmd_upload(args: argparse.Namespace, settings: Settings) -> None:
    store = RecordStore()
    if store.get_group(args.group) is None:
        logger.warning("Uploading to a group unknown locally", group_id=args.group)
    client = ResumeApiClient(settings)
    orchestrator = UploadOrchestrator(store, client.upload_resumes, settings)

    for v in orchestrator.select_files(_existing_files(args.files)):
        if not v.accepted:
            print(f"[rejected] {v.file.name}: {'; '.join(v.violations)}")

    try:
        session = orchestrator.submit_upload(args.group)
    except NoFilesSelectedError as e:
        raise SystemExit(str(e))

    for entry in session.completed:
        print(f"[uploaded] {entry.name} (id={entry.id})")
    for name, error in session.errors.items():
        print(f"[error] {name}: {error}")
    print(f"Status: {session.status.value}")
    if session.errors:
        raise SystemExit(1)


def _remote_call(call, *args, **kwargs):
    try:
        return call(*args, **kwargs)
    except (TransportError, requests.exceptions.RequestException) as e:
        raise SystemExit(f"Request failed: {e}")


def _load_records(args: argparse.Namespace, settings: Settings):
    if args.remote:
        return _remote_call(ResumeApiClient(settings).list_resumes)
    data = _load_json(args.input)
    items = data.get("resumes", []) if isinstance(data, dict) else data
    return [resume_from_api(item) for item in items]


def cmd_search(args: argparse.Namespace, settings: Settings) -> None:
    records = _load_records(args, settings)

    store = RecordStore()
    engine = SearchEngine(store, delay=settings.debounce_seconds)
    try:
        store.set_resumes(records)
        store.set_query(args.query or "")
        store.set_status_filter(args.status or [])
        store.set_group_filter(args.group)
        store.set_date_range(_parse_datetime(args.since), _parse_datetime(args.until))
        engine.flush()
        results = engine.results
    finally:
        engine.close()

    print(f"{len(results)} of {len(records)} resumes match")
    for record in results:
        print(f" - [{record.status.value}] {record.id} {record.file_name}")


def cmd_rank(args: argparse.Namespace, settings: Settings) -> None:
    data = _load_json(args.input)
    if isinstance(data, dict) and "answer" in data:
        candidates, summary = candidates_from_search_response(data)
        if summary:
            print(summary)
            print()
    else:
        candidates = [candidate_from_dict(item) for item in data]
    try:
        ranked = rank_candidates(candidates, args.sort_by)
    except ValueError as e:
        raise SystemExit(str(e))
    _print_candidates(ranked)


def cmd_find(args: argparse.Namespace, settings: Settings) -> None:
    client = ResumeApiClient(settings)
    try:
        candidates, summary = client.search_candidates(args.query, group=args.group)
    except ValueError as e:
        raise SystemExit(str(e))
    except (TransportError, requests.exceptions.RequestException) as e:
        raise SystemExit(f"Search failed: {e}")
    if summary:
        print(summary)
        print()
    _print_candidates(rank_candidates(candidates, args.sort_by))


def cmd_fetch(args: argparse.Namespace, settings: Settings) -> None:
    client = ResumeApiClient(settings)
    try:
        content = client.retrieve_resume(args.id, direct_url=args.url)
    except RetrievalError as e:
        logger.error("Retrieval failed", resume_id=args.id, error=str(e))
        raise SystemExit(describe_retrieval_error(e))

    output = Path(args.output or f"resume_{args.id}")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(content.data)
    via = " (direct link)" if content.via_direct_link else ""
    print(f"Saved {len(content.data)} bytes to {output}{via}")


def cmd_groups(args: argparse.Namespace, settings: Settings) -> None:
    client = ResumeApiClient(settings)
    try:
        groups = client.list_groups()
    except (TransportError, requests.exceptions.RequestException) as e:
        logger.warning("Could not load groups, showing defaults", error=str(e))
        groups = bootstrap_groups()
    if not groups:
        print("No groups.")
        return
    for g in groups:
        desc = f" - {g.description}" if g.description else ""
        print(f"{g.id}: {g.name}{desc} ({g.resume_count} resumes)")


def cmd_resumes(args: argparse.Namespace, settings: Settings) -> None:
    records = _remote_call(ResumeApiClient(settings).list_resumes, group=args.group)
    if not records:
        print("No resumes.")
        return
    for r in records:
        group = f" group={r.group_id}" if r.group_id else ""
        print(f"{r.id}: {r.file_name} [{r.status.value}] {r.uploaded_at:%Y-%m-%d}{group}")


def cmd_delete(args: argparse.Namespace, settings: Settings) -> None:
    message = _remote_call(ResumeApiClient(settings).delete_resume, args.id)
    print(message)


def cmd_comment(args: argparse.Namespace, settings: Settings) -> None:
    client = ResumeApiClient(settings)
    if args.delete:
        _remote_call(client.delete_comment, args.id)
        print(f"Comment removed from {args.id}")
        return
    try:
        saved = _remote_call(client.save_comment, args.id, args.text)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Comment saved on {saved.resume_id}: {saved.comment}")


def cmd_match(args: argparse.Namespace, settings: Settings) -> None:
    """Rank candidates against a job description file."""
    job_description = _existing_files([args.file])[0]
    client = ResumeApiClient(settings)
    try:
        candidates, summary = _remote_call(client.search_by_job_description, job_description, group=args.group)
    except ValidationError as e:
        raise SystemExit(str(e))
    print(summary)
    print()
    try:
        ranked = rank_candidates(candidates, args.sort_by)
    except ValueError as e:
        raise SystemExit(str(e))
    _print_candidates(ranked)


def cmd_group_create(args: argparse.Namespace, settings: Settings) -> None:
    try:
        group = _remote_call(ResumeApiClient(settings).create_group, args.name, args.description)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Created group {group.id}: {group.name}")


def cmd_group_update(args: argparse.Namespace, settings: Settings) -> None:
    if args.name is None and args.description is None:
        raise SystemExit("Nothing to update: pass --name and/or --description")
    group = _remote_call(
        ResumeApiClient(settings).update_group, args.id, name=args.name, description=args.description
    )
    print(f"Updated group {group.id}: {group.name}")


def cmd_group_delete(args: argparse.Namespace, settings: Settings) -> None:
    try:
        message = _remote_call(ResumeApiClient(settings).delete_group, args.id)
    except GroupInUseError as e:
        raise SystemExit(f"{e}. Move or delete its resumes first.")
    print(message)


def main():
    load_env()
    settings = load_settings()
    logger.configure(level=settings.log_level, log_dir=settings.log_dir)

    parser = argparse.ArgumentParser(prog="resumeparser", description="Resume upload and candidate search")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    val = subparsers.add_parser("validate", help="Check files against the size and type rules")
    val.add_argument("files", nargs="+", help="Resume files (PDF, DOC, DOCX, TXT)")
    val.set_defaults(func=cmd_validate)

    upl = subparsers.add_parser("upload", help="Validate and upload resumes to a group")
    upl.add_argument("--group", required=True, help="Target group id")
    upl.add_argument("files", nargs="+", help="Resume files")
    upl.set_defaults(func=cmd_upload)

    sea = subparsers.add_parser("search", help="Filter resume records from a JSON export or the service")
    source = sea.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="JSON file with a list of resume records")
    source.add_argument("--remote", action="store_true", help="List the records from the service")
    sea.add_argument("--query", help="Case-insensitive text matched against file name, name and email")
    sea.add_argument("--status", action="append", choices=[s.value for s in ResumeStatus],
                     help="Keep only this status (repeatable)")
    sea.add_argument("--group", help="Keep only this group id")
    sea.add_argument("--since", help="Uploaded at or after (ISO date)")
    sea.add_argument("--until", help="Uploaded at or before (ISO date)")
    sea.set_defaults(func=cmd_search)

    rnk = subparsers.add_parser("rank", help="Rank candidates from a JSON file")
    rnk.add_argument("--input", required=True, help="Search response or list of candidates (JSON)")
    rnk.add_argument("--sort-by", default="score", help="score, name, clarity, experience, reputation or loyalty")
    rnk.set_defaults(func=cmd_rank)

    fnd = subparsers.add_parser("find", help="Search candidates on the service and rank them")
    fnd.add_argument("--query", required=True, help="Search text (at least 5 characters)")
    fnd.add_argument("--group", help="Restrict to a group")
    fnd.add_argument("--sort-by", default="score", help="Ranking dimension")
    fnd.set_defaults(func=cmd_find)

    fet = subparsers.add_parser("fetch", help="Download the file behind a resume")
    fet.add_argument("--id", required=True, help="Resume id")
    fet.add_argument("--url", help="Direct link to try if the API download fails")
    fet.add_argument("--output", help="Destination path (default: resume_<id>)")
    fet.set_defaults(func=cmd_fetch)

    grp = subparsers.add_parser("groups", help="List resume groups")
    grp.set_defaults(func=cmd_groups)

    grc = subparsers.add_parser("group-create", help="Create a group on the service")
    grc.add_argument("--name", required=True, help="Group name")
    grc.add_argument("--description", help="Group description")
    grc.set_defaults(func=cmd_group_create)

    gru = subparsers.add_parser("group-update", help="Rename or redescribe a group")
    gru.add_argument("--id", required=True, help="Group id")
    gru.add_argument("--name", help="New name")
    gru.add_argument("--description", help="New description")
    gru.set_defaults(func=cmd_group_update)

    grd = subparsers.add_parser("group-delete", help="Delete an empty group")
    grd.add_argument("--id", required=True, help="Group id")
    grd.set_defaults(func=cmd_group_delete)

    res = subparsers.add_parser("resumes", help="List resumes stored on the service")
    res.add_argument("--group", help="Only resumes in this group (by name)")
    res.set_defaults(func=cmd_resumes)

    dele = subparsers.add_parser("delete", help="Delete a resume on the service")
    dele.add_argument("--id", required=True, help="Resume id")
    dele.set_defaults(func=cmd_delete)

    com = subparsers.add_parser("comment", help="Set or remove the reviewer comment on a resume")
    com.add_argument("--id", required=True, help="Resume id")
    action = com.add_mutually_exclusive_group(required=True)
    action.add_argument("--text", help="Comment text")
    action.add_argument("--delete", action="store_true", help="Remove the comment")
    com.set_defaults(func=cmd_comment)

    mat = subparsers.add_parser("match", help="Rank candidates against a job description file")
    mat.add_argument("--file", required=True, help="Job description (PDF, DOC, DOCX, TXT)")
    mat.add_argument("--group", help="Restrict to a group")
    mat.add_argument("--sort-by", default="score", help="Ranking dimension")
    mat.set_defaults(func=cmd_match)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args, settings)
        finally:
            logger.log_metrics_summary()
        return

    parser.print_help()


if __name__ == "__main__":
    main()
