#!/usr/bin/env python3
"""
CivicAlert Backend Runner
=========================

Usage:
    python run_app.py                    # Development server with auto-reload
    python run_app.py --mode prod        # Production mode, multiple workers
    python run_app.py --port 8001        # Custom port
    python run_app.py --host 127.0.0.1   # Custom host
    python run_app.py --init-db          # Create tables and exit
"""

import argparse
import asyncio
import os
import sys

def check_environment():
    """Report configuration that commonly trips up a fresh checkout"""
    print("\n🔍 Checking environment...")

    if os.path.exists(".env"):
        print("✅ .env file found")
    else:
        print("⚠️  .env file not found, using defaults")

    if not os.getenv("VAPID_PRIVATE_KEY"):
        print("⚠️  VAPID_PRIVATE_KEY not set; push deliveries will fail")
    if not os.getenv("ADMIN_TOKEN"):
        print("⚠️  ADMIN_TOKEN not set; admin endpoints will reject every request")

def init_database():
    """Create tables without starting the server"""
    from civicalert.core.database import init_db, close_db

    async def _run():
        await init_db()
        await close_db()

    asyncio.run(_run())
    print("✅ Database tables created")

def run_app(host="0.0.0.0", port=8000, reload=True, workers=1):
    """Run the FastAPI application"""
    print(f"\n🚀 Starting CivicAlert API on {host}:{port}")
    print(f"📖 API Docs: http://localhost:{port}/api/docs")
    print("\n" + "=" * 50)

    import uvicorn
    uvicorn.run(
        "civicalert.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else workers,
        log_level="info"
    )

def main():
    parser = argparse.ArgumentParser(
        description="CivicAlert Backend Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="Server mode (default: dev)"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--workers", type=int, default=4, help="Worker processes in prod mode")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload")
    parser.add_argument("--init-db", action="store_true", help="Create tables and exit")

    args = parser.parse_args()

    check_environment()

    if args.init_db:
        init_database()
        return 0

    reload = not args.no_reload and args.mode != "prod"
    run_app(args.host, args.port, reload, args.workers)
    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")
        sys.exit(0)
