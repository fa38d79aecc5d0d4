"""Local dev launcher — runs the scheduler API in a single process.

Usage:
    python run_local.py

No Redis or Docker needed. Uses fakeredis channel locks + SQLite.
"""

import os
from pathlib import Path

# Ensure data dir exists
root = Path(__file__).parent
(root / "data").mkdir(exist_ok=True)

# Set local-friendly env defaults (won't override if already set)
os.environ.setdefault("FASTCHANNEL_ENV", "local")
os.environ.setdefault("DB_URL", f"sqlite:///{root / 'data' / 'fastchannel.db'}")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("PUBLIC_URL", "http://localhost:8080")

from fastchannel.api.app import create_app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    print()
    print("=" * 60)
    print("  FAST Channel Scheduler — Local Dev Mode")
    print("=" * 60)
    print(f"  API:     http://localhost:8080")
    print(f"  Docs:    http://localhost:8080/docs")
    print(f"  Metrics: http://localhost:8080/metrics")
    print(f"  Webhook: {os.environ['PUBLIC_URL']}/webhook/nextVod?channelId=<id>")
    print(f"  DB:      {os.environ['DB_URL']}")
    print("=" * 60)
    print()

    uvicorn.run(
        "run_local:app",
        host="0.0.0.0",
        port=8080,
        reload=True,
        reload_dirs=[str(root / "fastchannel")],
    )
