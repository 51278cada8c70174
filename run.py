#!/usr/bin/env python3
"""
Simple run script for the identity workflow engine.

Usage:
    python run.py
    
Or with custom settings:
    HOST=127.0.0.1 PORT=8080 EXECUTION_BACKEND=http API_BASE_URL=https://... python run.py
"""

import uvicorn
import os


def main():
    """Run the FastAPI application."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "true").lower() == "true"
    
    print(f"""
idflow - identity verification workflows
  Server:    http://{host}:{port}
  API Docs:  http://{host}:{port}/docs
  Workflow:  http://{host}:{port}/workflow
    """)
    
    uvicorn.run(
        "idflow.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
