"""
odata_explorer.api - Run as module

Usage: python -m odata_explorer.api
"""

import os
import uvicorn


def main():
    """Run the API gateway server."""
    host = os.environ.get("ODATA_HOST", "0.0.0.0")
    port = int(os.environ.get("ODATA_PORT", "5050"))
    reload = os.environ.get("ODATA_RELOAD", "false").lower() == "true"
    log_level = os.environ.get("ODATA_LOG_LEVEL", "info")

    print(f"Starting OData Explorer Gateway on {host}:{port}")

    uvicorn.run(
        "odata_explorer.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
