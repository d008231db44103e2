"""
main.py: Server launcher and entry point.

Run this file to start the laundry coordination API:

    python main.py

Interactive API docs are served at http://127.0.0.1:8000/docs

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and tick lifecycle.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("AURA_HOST", "127.0.0.1")
PORT = int(os.getenv("AURA_PORT", "8000"))


def main() -> None:
    """Start the DYP Aura laundry server."""
    print("=" * 60)
    print("  DYP Aura: Residence Laundry Coordination")
    print("=" * 60)
    print(f"  Server  : http://{HOST}:{PORT}")
    print(f"  API docs: http://{HOST}:{PORT}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # A single worker: all state lives in this process.
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=False,
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
