from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import platform
import statistics
import sys
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
from cryptography.fernet import Fernet

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from snapslock.db.models.base import Base
from snapslock.main import create_app

SEED_TAGS = ("sunset", "beach", "city", "forest", "night", "portrait", "winter", "street")


@dataclass(frozen=True, slots=True)
class BenchResult:
    total: int
    ok: int
    bad_request: int
    other_error: int
    durations_s: list[float]


def _p(sorted_values: list[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    k = (len(sorted_values) - 1) * (max(0.0, min(float(p), 100.0)) / 100.0)
    f = int(k)
    c = min(f + 1, len(sorted_values) - 1)
    if f == c:
        return sorted_values[f]
    return sorted_values[f] * (c - k) + sorted_values[c] * (k - f)


async def _migrate_and_seed(*, app, seed_images: int) -> None:
    engine = app.state.engine
    base_ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
    seed_images_i = max(1, int(seed_images))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        await conn.exec_driver_sql(
            "INSERT INTO tags (id, name, slug) VALUES (?,?,?);",
            [(i + 1, name.title(), name) for i, name in enumerate(SEED_TAGS)],
        )

        images: list[tuple[Any, ...]] = []
        links: list[tuple[str, int]] = []
        for i in range(seed_images_i):
            image_id = f"bench-{i:08d}"
            created = (base_ts + timedelta(seconds=i)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
            images.append(
                (
                    image_id,
                    f"Bench image {i}",
                    f"wallpapers/bench_{i}",
                    f"https://cdn.bench.local/wallpapers/bench_{i}.jpg",
                    1920,
                    1080,
                    "jpg",
                    i % 17,
                    created,
                    created,
                )
            )
            # Every image gets two or three tags so multi-tag filters have partial overlaps.
            for offset in range(2 + (i % 2)):
                links.append((image_id, ((i + offset * 3) % len(SEED_TAGS)) + 1))

        await conn.exec_driver_sql(
            """
INSERT INTO images (
  id, title, public_id, secure_url, width, height, format,
  likes_count, created_at, updated_at
) VALUES (?,?,?,?,?,?,?,?,?,?);
""".strip(),
            images,
        )
        await conn.exec_driver_sql("INSERT INTO images_tags (image_id, tag_id) VALUES (?,?);", links)


async def _run_bench(*, app, total_requests: int, concurrency: int, endpoint: str) -> BenchResult:
    total_i = max(1, int(total_requests))
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))
    durations_s: list[float] = []
    ok = 0
    bad_request = 0
    other_error = 0

    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://bench.local",
        timeout=httpx.Timeout(30.0, connect=10.0),
    )

    async def one(page: int) -> None:
        nonlocal ok, bad_request, other_error
        sep = "&" if "?" in endpoint else "?"
        async with semaphore:
            started = time.perf_counter()
            try:
                resp = await client.get(f"{endpoint}{sep}page={page}")
            except httpx.HTTPError:
                other_error += 1
            else:
                if resp.status_code == 200:
                    ok += 1
                elif resp.status_code == 400:
                    bad_request += 1
                else:
                    other_error += 1
            finally:
                durations_s.append(time.perf_counter() - started)

    try:
        await asyncio.gather(*[asyncio.create_task(one((i % 5) + 1)) for i in range(total_i)])
    finally:
        await client.aclose()

    return BenchResult(
        total=total_i,
        ok=ok,
        bad_request=bad_request,
        other_error=other_error,
        durations_s=durations_s,
    )


def _build_report(*, args, result: BenchResult, elapsed_s: float) -> dict[str, Any]:
    ds = sorted(float(x) for x in result.durations_s if x >= 0)
    return {
        "created_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "endpoint": args.endpoint,
        "requests": {
            "total": result.total,
            "concurrency": args.concurrency,
            "ok": result.ok,
            "bad_request": result.bad_request,
            "other_error": result.other_error,
        },
        "latency_s": {
            "min": ds[0] if ds else 0.0,
            "p50": _p(ds, 50.0),
            "p90": _p(ds, 90.0),
            "p99": _p(ds, 99.0),
            "max": ds[-1] if ds else 0.0,
            "mean": statistics.fmean(ds) if ds else 0.0,
        },
        "throughput": {
            "elapsed_s": float(elapsed_s),
            "rps": float(result.total / elapsed_s) if elapsed_s > 0 else 0.0,
        },
        "seed_images": int(args.seed_images),
        "env": {
            "python": sys.version.split()[0],
            "platform": platform.platform(),
            "machine": platform.machine(),
        },
    }


async def main_async(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="In-process /api/images load test using httpx ASGITransport.")
    parser.add_argument("--requests", type=int, default=500)
    parser.add_argument("--concurrency", type=int, default=50)
    parser.add_argument("--seed-images", type=int, default=5000)
    parser.add_argument("--endpoint", type=str, default="/api/images?tag=sunset&tag=beach&pageSize=12")
    parser.add_argument("--output", type=str, default="")
    args = parser.parse_args(argv)

    with tempfile.TemporaryDirectory(prefix="snapslock_bench_") as td:
        os.environ["APP_ENV"] = os.environ.get("APP_ENV") or "dev"
        os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + (Path(td) / "bench.db").as_posix()
        os.environ["FIELD_ENCRYPTION_KEY"] = os.environ.get("FIELD_ENCRYPTION_KEY") or Fernet.generate_key().decode(
            "ascii"
        )

        app = create_app()
        try:
            logging.getLogger("httpx").setLevel(logging.WARNING)
            logging.getLogger("httpcore").setLevel(logging.WARNING)

            await _migrate_and_seed(app=app, seed_images=args.seed_images)

            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://bench.local") as c:
                await c.get("/healthz")

            started = time.perf_counter()
            result = await _run_bench(
                app=app,
                total_requests=args.requests,
                concurrency=args.concurrency,
                endpoint=args.endpoint,
            )
            report = _build_report(args=args, result=result, elapsed_s=time.perf_counter() - started)

            out_path = (args.output or "").strip()
            if out_path:
                out = Path(out_path)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(json.dumps(report, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
                print(f"[bench_images_asgi] wrote report: {out}")
            else:
                print(json.dumps(report, ensure_ascii=False, indent=2))
        finally:
            await app.state.engine.dispose()

    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(main_async(argv))


if __name__ == "__main__":
    raise SystemExit(main())
