"""
LegalWatch Server Runner
========================
Run this directly: python run_server.py
"""

import uvicorn

from app.core.config import get_settings


def main():
    settings = get_settings()

    print()
    print("=" * 60)
    print(f"  {settings.app_name.upper()} SERVER")
    print("=" * 60)
    print()
    print(f"  API Docs:   http://localhost:{settings.port}/api/docs")
    print(f"  Health:     http://localhost:{settings.port}/health")
    print(f"  AI:         {settings.ai_provider} ({'configured' if settings.ai_api_key else 'NOT configured'})")
    print()
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
