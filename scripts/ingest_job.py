"""
CLI utility for starting ingestion jobs and tailing their progress.

Usage:
    python scripts/ingest_job.py scan --dir data/corpus --ext txt --ext pdf
    python scripts/ingest_job.py stream --csv data/rows.csv --index papers --batch-size 500
    python scripts/ingest_job.py cancel --job stream_1718000000000_1a2b3c4d
"""

import argparse
import asyncio
import sys

import httpx


TERMINAL = {"COMPLETED", "FAILED", "CANCELLED"}


async def tail_progress(job_id: str, base_url: str = "http://localhost:8000") -> int:
    """
    Poll job status and display progress until the job is terminal.

    Args:
        job_id: Job ID to monitor
        base_url: API base URL
    """
    async with httpx.AsyncClient() as client:
        while True:
            try:
                response = await client.get(f"{base_url}/jobs/{job_id}")
                response.raise_for_status()
                status = response.json()
            except httpx.HTTPError as e:
                print(f"\nError polling status: {e}")
                return 1

            state = status["status"]
            pct = status["progress"].get("percentage")
            rate = status["progress"].get("rate_per_second", 0.0)

            bar_length = 40
            filled = int(bar_length * (pct or 0) / 100)
            bar = "=" * filled + "-" * (bar_length - filled)
            pct_text = f"{pct:5.1f}%" if pct is not None else "  ?  "

            print(
                f"\r[{bar}] {pct_text} | {state:10s} | "
                f"{status['processed']} processed, {status['failed']} failed, {rate:.1f}/s",
                end="",
                flush=True,
            )

            if state in TERMINAL:
                print()
                print(f"\nJob {job_id} finished: {state}")
                print(f"   Succeeded: {status['succeeded']}")
                print(f"   Failed:    {status['failed']}")
                if status.get("output_location"):
                    print(f"   Output:    {status['output_location']}")
                for error in status.get("errors", [])[:10]:
                    print(f"   ! {error}")
                return 0 if state == "COMPLETED" else 1

            await asyncio.sleep(0.5)


async def start_job(endpoint: str, body: dict, base_url: str, follow: bool) -> int:
    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(f"{base_url}{endpoint}", json=body, timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            print(f"Failed to start job: {e.response.status_code} {e.response.text[:200]}")
            return 1
        except httpx.HTTPError as e:
            print(f"Failed to start job: {e}")
            return 1

        job_id = response.json()["job_id"]
        print(f"Job started: {job_id}\n")

    if not follow:
        return 0
    return await tail_progress(job_id, base_url)


async def cancel_job(job_id: str, base_url: str) -> int:
    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(f"{base_url}/jobs/{job_id}/cancel", timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            print(f"Failed to cancel job: {e}")
            return 1

    cancelled = response.json()["cancelled"]
    print(f"Job {job_id}: {'cancelled' if cancelled else 'already finished'}")
    return 0


def main():
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(description="Start and monitor ingestion jobs")
    parser.add_argument("--url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--no-follow", action="store_true", help="Return once the job is queued")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan a directory into an extraction manifest")
    scan.add_argument("--dir", required=True, help="Directory to scan")
    scan.add_argument("--out", default=None, help="Manifest CSV path")
    scan.add_argument("--ext", action="append", default=None, help="Extension to include (repeatable)")
    scan.add_argument("--max-files", type=int, default=None)
    scan.add_argument("--no-recursive", action="store_true")

    stream = sub.add_parser("stream", help="Stream a CSV file into the record sink")
    stream.add_argument("--csv", required=True, help="CSV file path")
    stream.add_argument("--index", required=True, help="Sink destination name")
    stream.add_argument("--batch-size", type=int, default=100)
    stream.add_argument("--text-column", default="content")
    stream.add_argument("--id-column", default=None)
    stream.add_argument("--delimiter", default=",")
    stream.add_argument("--max-records", type=int, default=None)

    cancel = sub.add_parser("cancel", help="Cancel a running job")
    cancel.add_argument("--job", required=True, help="Job ID")

    args = parser.parse_args()
    follow = not args.no_follow

    if args.command == "scan":
        body = {
            "directory_path": args.dir,
            "output_csv_path": args.out,
            "recursive": not args.no_recursive,
            "max_files": args.max_files,
        }
        if args.ext:
            body["supported_extensions"] = args.ext
        exit_code = asyncio.run(start_job("/jobs/scan", body, args.url, follow))
    elif args.command == "stream":
        body = {
            "csv_file_path": args.csv,
            "index_name": args.index,
            "batch_size": args.batch_size,
            "text_column": args.text_column,
            "id_column": args.id_column,
            "delimiter": args.delimiter,
            "max_records": args.max_records,
        }
        exit_code = asyncio.run(start_job("/jobs/stream", body, args.url, follow))
    else:
        exit_code = asyncio.run(cancel_job(args.job, args.url))

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
