"""
OnboardX Backend — Uvicorn Launcher

Usage:
    python run.py
    python run.py --port 9000 --reload
    python run.py --env-file ../.env.staging
"""
import argparse
import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="OnboardX conversational onboarding API")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--workers", type=int, default=1,
                        help="Worker processes; sessions are per-process (default: 1)")
    parser.add_argument("--env-file", default=None, help="Extra .env file to load before start")
    parser.add_argument("--log-level", default="info",
                        choices=["critical", "error", "warning", "info", "debug"])
    return parser


def main():
    args = build_parser().parse_args()
    if args.workers > 1:
        print("  [!] Chat sessions live in process memory; each worker keeps its own set.")

    base = f"http://localhost:{args.port}"
    print(f"""
    ========================================================
      OnboardX -- Onboarding Backend
      Bind:     {args.host}:{args.port}
      Docs:     {base}/docs
      RPC:      POST {base}/api/onboardx-chat
      Sessions: {base}/api/session/start
      Health:   {base}/health
    ========================================================
    """)

    uvicorn.run(
        "onboardx.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        env_file=args.env_file,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
