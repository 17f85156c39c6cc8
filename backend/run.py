#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.
For local development only - creates tables on startup.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "true")

import uvicorn

if __name__ == "__main__":
    print("🚀 Starting availability engine...")
    print("🌐 Access at: http://localhost:8000")
    print("📚 API Docs: http://localhost:8000/docs")

    uvicorn.run(
        "availability_engine.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info"
    )
