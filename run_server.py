#!/usr/bin/env python3
"""Development server launcher for the /generate relay."""

import os

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Server will be available at: http://localhost:{port}/generate")
    uvicorn.run("backend.app:app", host="0.0.0.0", port=port, log_level="info")
