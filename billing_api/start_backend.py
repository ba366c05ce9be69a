#!/usr/bin/env python3
"""
Billing API startup wrapper.

    python -m billing_api.start_backend
"""
import os
import sys

import uvicorn


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    print(f"[billing_api] Server: http://{host}:{port}")
    try:
        uvicorn.run(
            "billing_api.main:app",
            host=host,
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[billing_api] Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
